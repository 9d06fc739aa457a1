"""Reports bucket creation.

Exported reports land under:
  <bucket>/reports/
"""
import boto3
from botocore.exceptions import ClientError

REGION = "us-west-2"
BUCKET_PREFIX = "smartshelf-reports"


def get_bucket_name(region: str = REGION) -> str:
    """Builds a unique bucket name from the account id."""
    sts = boto3.client("sts", region_name=region)
    account_id = sts.get_caller_identity()["Account"]
    return f"{BUCKET_PREFIX}-{account_id}"


def create_bucket(region: str = REGION, bucket_name: str = None, client=None) -> str:
    s3 = client or boto3.client("s3", region_name=region)
    bucket_name = bucket_name or get_bucket_name(region)
    try:
        if region == "us-east-1":
            s3.create_bucket(Bucket=bucket_name)
        else:
            s3.create_bucket(
                Bucket=bucket_name,
                CreateBucketConfiguration={"LocationConstraint": region},
            )
        print(f"  ✓ Bucket created: {bucket_name}")
    except ClientError as e:
        if e.response["Error"]["Code"] in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
            print(f"  ⏭️  Bucket already exists: {bucket_name}")
        else:
            raise
    s3.put_object(Bucket=bucket_name, Key="reports/", Body=b"")
    return bucket_name


def delete_bucket(region: str = REGION, bucket_name: str = None):
    """Deletes the bucket and everything in it (use with care)."""
    s3 = boto3.resource("s3", region_name=region)
    bucket_name = bucket_name or get_bucket_name(region)
    try:
        bucket = s3.Bucket(bucket_name)
        bucket.objects.all().delete()
        bucket.delete()
        print(f"  🗑️  {bucket_name} deleted")
    except ClientError:
        print(f"  ⏭️  {bucket_name} not found")
