"""Command-line helper that signs a container SAS from the configured storage account."""

import argparse
import logging
import sys
from datetime import timedelta

from config import load_issuer_config
from services.errors import SasIssuerError
from services.models import ContainerRef, utc_now
from services.sas_service import TokenGenerator
from services.storage_client import create_blob_service_client

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a SAS token for a blob container")
    parser.add_argument("--container", help="Container name (default: SAS_CONTAINER_NAME)")
    parser.add_argument("--policy-id", help="Reference this stored access policy instead of embedding permissions")
    parser.add_argument("--permissions", default="rl", help="Ad-hoc permission letters from 'rwldac' (default: rl)")
    parser.add_argument("--hours", type=int, default=1, help="Ad-hoc validity in hours (default: 1)")
    parser.add_argument("--account", action="store_true", help="Generate an account SAS (read/write, service scope)")
    parser.add_argument("--env-file", help="Also write SAS_TOKEN=<token> to this file")
    return parser.parse_args(argv)


def generate_sas_token(args: argparse.Namespace) -> str:
    """Return the token with its leading question mark."""
    config = load_issuer_config()
    service_client = create_blob_service_client(
        connection_string=config.connection_string,
        account_url=config.account_url,
    )
    generator = TokenGenerator(service_client, protocol=config.protocol)

    if args.account:
        return f"?{generator.issue_account_sas(expires_on=utc_now() + timedelta(hours=args.hours))}"

    container = ContainerRef(args.container or config.container_name)
    if args.policy_id:
        token = generator.issue_container_sas(container, args.policy_id)
    else:
        token = generator.issue_container_sas(
            container,
            permissions=args.permissions,
            expires_on=utc_now() + timedelta(hours=args.hours),
        )
    return token.query_string


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        sas_token = generate_sas_token(args)
    except SasIssuerError as e:
        logger.error(f"Error generating SAS token: {e}")
        return 1

    print(f"SAS_TOKEN={sas_token}")

    if args.env_file:
        with open(args.env_file, "w") as f:
            f.write(f"SAS_TOKEN={sas_token}")
        logger.info(f"SAS token written to {args.env_file}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
