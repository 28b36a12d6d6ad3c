"""
Command line entry point

    python -m bank_ops serve
    python -m bank_ops sweep-expired
    python -m bank_ops create-user --identification ... --role internal_analyst ...

sweep-expired is the hook for a scheduler (cron, systemd timer) that expires
stale pending transfers. create-user bootstraps the first analyst, who can
then manage users through the API.
"""

import argparse
import sys

from .config import get_config
from .errors import BankingError
from .logging_config import setup_logging
from .roles import Role, USER_ROLES


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bank_ops", description="Banking operations core")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Bind address (default from config)")
    serve.add_argument("--port", type=int, default=None, help="Port (default from config)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    subparsers.add_parser("sweep-expired", help="Expire pending transfers past the approval window")

    create_user = subparsers.add_parser("create-user", help="Create a user as the system actor")
    create_user.add_argument("--identification", required=True)
    create_user.add_argument("--full-name", required=True)
    create_user.add_argument("--email", required=True)
    create_user.add_argument("--phone", required=True)
    create_user.add_argument("--address", required=True)
    create_user.add_argument("--password", required=True)
    create_user.add_argument(
        "--role", required=True, choices=[role.value for role in USER_ROLES]
    )

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format, log_file=config.log_file)

    if args.command == "serve":
        from .api import run_server
        run_server(
            host=args.host or config.api_host,
            port=args.port or config.api_port,
            debug=args.reload,
            log_level=config.log_level
        )
        return 0

    from .api.auth import BankingSystem
    system = BankingSystem(config)
    try:
        if args.command == "sweep-expired":
            expired = system.transfers.sweep_expired()
            print(f"Expired {expired} pending transfers")
            return 0

        if args.command == "create-user":
            user = system.users.create_user(
                identification=args.identification,
                full_name=args.full_name,
                email=args.email,
                phone=args.phone,
                address=args.address,
                role=Role(args.role),
                password=args.password
            )
            print(f"Created user {user.id} ({user.role.value})")
            return 0
    except BankingError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        system.close()

    return 2


if __name__ == "__main__":
    sys.exit(main())
