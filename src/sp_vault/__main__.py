# SP Vault - Server Entry Point
#
#   sp-vault                      serve on 127.0.0.1:5001
#   sp-vault --host 0.0.0.0 --port 8080 --env-file prod.env

import argparse
import logging

import uvicorn

from . import __version__
from .core.config import Settings, set_settings


def main():
    """Parse arguments, load settings and run the API under uvicorn."""
    parser = argparse.ArgumentParser(
        description="SP Vault - personal credential vault API server",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=5001,
        help="Port (default: 5001)",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Load SP_VAULT_* settings from this file instead of ./.env",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Application log level (default: info)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"SP Vault v{__version__}",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env(args.env_file)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    set_settings(settings)

    from .api.main import create_app

    uvicorn.run(
        create_app(),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
