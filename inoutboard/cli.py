"""In/Out Board CLI: ``inoutboard serve`` and ``inoutboard seed``."""

import argparse
import logging
import sys

from inoutboard import __version__
from inoutboard.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inoutboard",
        description="Live in/out presence board for the office.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the board server")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    subparsers.add_parser("seed", help="Replace the roster with demo data")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        from inoutboard.api import create_app

        uvicorn.run(
            create_app(settings),
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_config=None,
        )
    elif args.command == "seed":
        from inoutboard.database import Store, create_db_engine, init_db
        from inoutboard.seed import seed_demo

        engine = create_db_engine(settings.database_url)
        init_db(engine)
        count = seed_demo(Store(engine))
        engine.dispose()
        print(f"Seeded {count} people.")


if __name__ == "__main__":
    main()
