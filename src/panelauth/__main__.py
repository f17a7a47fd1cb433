"""panelauth entry point."""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from panelauth.config import get_settings
from panelauth.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("panelauth")
    except PackageNotFoundError:
        from panelauth import __version__

        return __version__


def _cmd_serve(args: argparse.Namespace) -> int:
    from panelauth.api.serve import run_api_server

    run_api_server(host=args.host, port=args.port, dev=args.dev)
    return 0


def _cmd_hash_secret(args: argparse.Namespace) -> int:
    from panelauth.api.oauth2.server import hash_client_secret

    print(hash_client_secret(args.secret))
    return 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    from panelauth.db import create_db_engine, init_db

    url = get_settings().database_url
    init_db(create_db_engine(url))
    logger.info("Database ready")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="panelauth",
        description="OAuth 2.1 authorization server with PKCE and API keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  panelauth serve                         Start the server on 127.0.0.1:8787
  panelauth serve --host 0.0.0.0 --dev    Listen everywhere with auto-reload
  panelauth hash-secret s3cret            Hash a client secret for the client table
  panelauth init-db                       Create database tables
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {_version()}")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8787, help="Port to listen on (default: 8787)")
    serve.add_argument("--dev", action="store_true", help="Auto-reload on source changes")
    serve.set_defaults(func=_cmd_serve)

    hash_secret = sub.add_parser("hash-secret", help="Print a client_secret_hash for a secret")
    hash_secret.add_argument("secret")
    hash_secret.set_defaults(func=_cmd_hash_secret)

    init = sub.add_parser("init-db", help="Create database tables")
    init.set_defaults(func=_cmd_init_db)

    args = parser.parse_args(argv)
    setup_logging(level=get_settings().log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
