"""Run the pokedex API server.

Usage:
    python -m pokedex [--settings path/to/settings.yaml] [--log-level INFO]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import uvicorn

from pokedex.api.app import create_app
from pokedex.config import load_settings


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, configure logging and serve until interrupted."""
    parser = argparse.ArgumentParser(prog="pokedex", description=__doc__.splitlines()[0])
    parser.add_argument("--settings", type=Path, default=None, help="settings YAML file")
    parser.add_argument("--log-level", default="INFO", help="logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.settings)
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
