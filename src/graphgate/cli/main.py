#!/usr/bin/env python3
"""
Graphgate CLI - Main entry point.

Usage:
    graphgate serve                          # Run the gateway
    graphgate serve --config prod.yaml --port 8080
    graphgate check-config                   # Print resolved config, secrets masked
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

import yaml

from .. import __version__
from ..config import load_config
from ..core.errors import ConfigError
from ..server import configure_logging, run


def _load(args: argparse.Namespace):
    return load_config(
        args.config,
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
    )


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the gateway until interrupted."""
    config = _load(args)
    configure_logging(config.log_level, filtered_paths=(config.health_path, config.metrics_path))
    return run(config)


def cmd_check_config(args: argparse.Namespace) -> int:
    """Validate configuration and print it."""
    config = _load(args)
    print(yaml.safe_dump(config.to_dict(mask_secrets=True), sort_keys=False), end="")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="graphgate",
        description="Graphgate - GraphQL gateway server"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the gateway server")
    serve_parser.add_argument("--config", "-c", help="YAML config file (default: ./graphgate.yaml)")
    serve_parser.add_argument("--host", help="Interface to bind")
    serve_parser.add_argument("--port", "-p", type=int, help="Port to bind")

    # check-config
    check_parser = subparsers.add_parser("check-config", help="Validate and print configuration")
    check_parser.add_argument("--config", "-c", help="YAML config file (default: ./graphgate.yaml)")

    return parser


def app(args: Optional[List[str]] = None) -> int:
    """Main CLI application."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    commands = {
        "serve": cmd_serve,
        "check-config": cmd_check_config,
    }

    handler = commands.get(parsed.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(parsed)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


def main() -> None:
    """Entry point for CLI."""
    sys.exit(app())


if __name__ == "__main__":
    main()
