"""Sets up the AWS resources and loads seed data.

Usage:
    python -m data_layer.scripts.setup_aws                     # create and load
    python -m data_layer.scripts.setup_aws --delete            # delete everything
    python -m data_layer.scripts.setup_aws --region eu-west-1  # another region
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from data_layer.generators.generators import generate_all
from data_layer.infrastructure.dynamodb_setup import create_tables, delete_tables, load_seed_data
from data_layer.infrastructure.s3_setup import create_bucket, delete_bucket
from smartshelf.config import load_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SmartShelfX AWS setup")
    parser.add_argument("--region", help="AWS region (defaults to the configured region)")
    parser.add_argument("--prefix", help="Table name prefix (defaults to the configured prefix)")
    parser.add_argument("--delete", action="store_true", help="Delete tables and the reports bucket")
    parser.add_argument("--no-seed", action="store_true", help="Create tables without loading seed data")
    parser.add_argument("--force", action="store_true", help="Load seed data even into non-empty tables")
    parser.add_argument("--with-bucket", action="store_true", help="Also create the reports bucket")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for generated data")
    for role in ("admin", "warehouse_manager", "vendor"):
        parser.add_argument(f"--{role.replace('_', '-')}-user-id", dest=f"{role}_user_id",
                            help=f"Cognito sub of the {role} user")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    settings = load_settings()
    region = args.region or settings.region
    prefix = settings.table_prefix if args.prefix is None else args.prefix

    if args.delete:
        print("🗑️  Deleting AWS resources...\n")
        print("--- DynamoDB ---")
        delete_tables(region, prefix)
        if args.with_bucket:
            print("\n--- S3 ---")
            delete_bucket(region, settings.reports_bucket)
        print("\n✅ Resources deleted")
        return

    print("=" * 60)
    print("🚀 SmartShelfX AWS setup")
    print(f"   Region: {region}  Table prefix: {prefix or '(none)'}")
    print("=" * 60)

    print("\n📊 STEP 1: DynamoDB tables")
    print("-" * 40)
    create_tables(region, prefix)

    if args.with_bucket:
        print("\n📦 STEP 2: Reports bucket")
        print("-" * 40)
        bucket = create_bucket(region, settings.reports_bucket)
        print(f"   Set SMARTSHELF_REPORTS_BUCKET={bucket} to upload exports")

    if not args.no_seed:
        print("\n📤 STEP 3: Seed data")
        print("-" * 40)
        user_ids = {
            role: getattr(args, f"{role}_user_id")
            for role in ("admin", "warehouse_manager", "vendor")
            if getattr(args, f"{role}_user_id")
        }
        load_seed_data(generate_all(seed=args.seed, user_ids=user_ids), region, prefix, force=args.force)

    print("\n" + "=" * 60)
    print("✅ AWS resources ready")
    print("=" * 60)


if __name__ == "__main__":
    main()
