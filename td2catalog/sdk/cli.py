"""Command-line access to the TD2 catalog API.

Examples
--------
    td2-api GET /catalog/brands
    TD2_PASSWORD=secret td2-api --email admin@example.com POST /builds --data '{"name": "x"}'
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional, Sequence

from .auth import login
from .client import CatalogClient
from .config import get_config, load_dotenv_for_sdk
from .exceptions import ApiError, ConfigurationError

logger = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="td2-api",
        description="Call the TD2 catalog API with session and CSRF handling.",
    )
    parser.add_argument("method", type=str.upper, choices=METHODS)
    parser.add_argument("path", help="API path, starting with '/'")
    parser.add_argument("--data", help="JSON request body")
    parser.add_argument("--api-url", help="Overrides TD2_API_URL")
    parser.add_argument("--email", help="Log in with this account first")
    parser.add_argument(
        "--password-env",
        default="TD2_PASSWORD",
        help="Environment variable holding the password (default: TD2_PASSWORD)",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


async def run(args: argparse.Namespace) -> int:
    """Perform the requested call and print its JSON result.

    Returns
    -------
    int
        Process exit code: 0 on success, 1 on any failure
    """
    try:
        body = json.loads(args.data) if args.data else None
    except ValueError as e:
        logger.error("--data is not valid JSON: %s", e)
        return 1

    try:
        client = CatalogClient(args.api_url, config=get_config())
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1

    async with client:
        try:
            if args.email:
                password = os.getenv(args.password_env, "")
                if not password:
                    logger.error("%s must hold the password for --email", args.password_env)
                    return 1
                await login(client, args.email, password)

            if args.method in ("GET", "DELETE"):
                if body is not None:
                    logger.warning("--data is ignored for %s", args.method)
                call = client.get if args.method == "GET" else client.delete
                result = await call(args.path)
            else:
                call = getattr(client, args.method.lower())
                result = await call(args.path, body)
        except ApiError as e:
            logger.error("Request failed (HTTP %s): %s", e.status, e.message)
            return 1
        except ValueError as e:
            logger.error("%s", e)
            return 1

    print(json.dumps(result, indent=2))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    load_dotenv_for_sdk()
    get_config(reload=True)
    return asyncio.run(run(args))


def cli_main():
    """Entry point for the td2-api command."""
    sys.exit(main())


if __name__ == "__main__":
    cli_main()
