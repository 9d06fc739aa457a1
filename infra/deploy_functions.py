"""
Notification functions deploy script.

Creates the Lambda execution role with boto3 and deploys send-vendor-email
(SES) and send-sms-alert (SNS) from the functions/ package.

Usage:
    python infra/deploy_functions.py
    python infra/deploy_functions.py --delete
"""

import argparse
import io
import json
import os
import sys
import time
import zipfile

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import boto3
from botocore.exceptions import ClientError

from smartshelf.config import load_settings

ROLE_NAME = "SmartShelfX-NotificationFunctions-Role"
POLICY_NAME = "SmartShelfX-NotificationFunctions-Policy"
FUNCTIONS_DIR = os.path.join(os.path.dirname(__file__), "..", "functions")
RUNTIME = "python3.12"

TRUST_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Principal": {"Service": "lambda.amazonaws.com"},
            "Action": "sts:AssumeRole",
        }
    ],
}

EXECUTION_POLICY = {
    "Version": "2012-10-17",
    "Statement": [
        {
            "Effect": "Allow",
            "Action": ["logs:CreateLogGroup", "logs:CreateLogStream", "logs:PutLogEvents"],
            "Resource": "*",
        },
        {"Effect": "Allow", "Action": ["ses:SendEmail", "ses:SendRawEmail"], "Resource": "*"},
        {"Effect": "Allow", "Action": ["sns:Publish"], "Resource": "*"},
    ],
}


def function_specs(settings) -> list:
    """(function name, module file, environment) per notification function."""
    return [
        (settings.email_function, "send_vendor_email.py", {
            "SES_SENDER": os.environ.get("SES_SENDER", ""),
            "SITE_URL": os.environ.get("SITE_URL", ""),
        }),
        (settings.sms_function, "send_sms_alert.py", {}),
    ]


def check_credentials(region: str) -> str:
    print("\n[1/4] Checking AWS credentials...")
    try:
        identity = boto3.client("sts", region_name=region).get_caller_identity()
    except ClientError as e:
        print(f"  ERROR: AWS credentials missing or invalid: {e}")
        sys.exit(1)
    print(f"  Account: {identity['Account']}")
    print(f"  Region: {region}")
    return identity["Account"]


def create_iam_role(region: str, iam=None) -> str:
    """Creates the execution role, or reuses it; returns its ARN."""
    print("\n[2/4] Lambda execution role...")
    iam = iam or boto3.client("iam", region_name=region)
    try:
        role_arn = iam.get_role(RoleName=ROLE_NAME)["Role"]["Arn"]
        print(f"  Role already exists: {role_arn}")
    except iam.exceptions.NoSuchEntityException:
        role_arn = iam.create_role(
            RoleName=ROLE_NAME,
            AssumeRolePolicyDocument=json.dumps(TRUST_POLICY),
            Description="Execution role for SmartShelfX notification functions",
        )["Role"]["Arn"]
        print(f"  Role created: {role_arn}")
        print("  Waiting 10 seconds for IAM propagation...")
        time.sleep(10)

    iam.put_role_policy(
        RoleName=ROLE_NAME,
        PolicyName=POLICY_NAME,
        PolicyDocument=json.dumps(EXECUTION_POLICY),
    )
    print(f"  Policy attached: {POLICY_NAME}")
    return role_arn


def build_zip(module_file: str, functions_dir: str = FUNCTIONS_DIR) -> bytes:
    """Zips one handler module at the archive root."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.write(os.path.join(functions_dir, module_file), arcname=module_file)
    return buffer.getvalue()


def deploy_function(lambda_client, name: str, module_file: str, role_arn: str, environment: dict) -> str:
    """Creates the function, or updates its code and configuration; returns the function ARN."""
    code = build_zip(module_file)
    handler = f"{module_file[:-3]}.lambda_handler"
    env = {"Variables": {k: v for k, v in environment.items() if v}}
    try:
        lambda_client.get_function(FunctionName=name)
    except lambda_client.exceptions.ResourceNotFoundException:
        resp = lambda_client.create_function(
            FunctionName=name,
            Runtime=RUNTIME,
            Role=role_arn,
            Handler=handler,
            Code={"ZipFile": code},
            Timeout=30,
            Environment=env,
        )
        print(f"  ✓ {name} created")
        return resp["FunctionArn"]

    resp = lambda_client.update_function_code(FunctionName=name, ZipFile=code)
    lambda_client.get_waiter("function_updated").wait(FunctionName=name)
    lambda_client.update_function_configuration(FunctionName=name, Handler=handler, Environment=env)
    print(f"  ✓ {name} updated")
    return resp["FunctionArn"]


def delete_functions(settings, region: str):
    lambda_client = boto3.client("lambda", region_name=region)
    for name, _module, _env in function_specs(settings):
        try:
            lambda_client.delete_function(FunctionName=name)
            print(f"  🗑️  {name} deleted")
        except ClientError:
            print(f"  ⏭️  {name} not found")
    iam = boto3.client("iam", region_name=region)
    try:
        iam.delete_role_policy(RoleName=ROLE_NAME, PolicyName=POLICY_NAME)
        iam.delete_role(RoleName=ROLE_NAME)
        print(f"  🗑️  {ROLE_NAME} deleted")
    except ClientError:
        print(f"  ⏭️  {ROLE_NAME} not found")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Deploy SmartShelfX notification functions")
    parser.add_argument("--delete", action="store_true", help="Delete the functions and their role")
    args = parser.parse_args(argv)

    settings = load_settings()
    region = settings.region

    if args.delete:
        delete_functions(settings, region)
        return

    print("=" * 50)
    print(" Notification functions deploy")
    print(f" Region: {region}")
    print("=" * 50)

    check_credentials(region)
    role_arn = create_iam_role(region)

    print("\n[3/4] Deploying functions...")
    lambda_client = boto3.client("lambda", region_name=region)
    for name, module_file, environment in function_specs(settings):
        deploy_function(lambda_client, name, module_file, role_arn, environment)

    print("\n[4/4] Done")
    print("  SES: verify the sender identity set in SES_SENDER before sending email.")
    print(f"  Test: aws lambda invoke --function-name {settings.sms_function} ...")


if __name__ == "__main__":
    main()
