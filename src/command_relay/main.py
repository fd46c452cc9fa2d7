"""Standalone entry point for the relay webhook server."""

import argparse

import uvicorn

from command_relay.api.app import create_app
from command_relay.containers import build_container


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="command-relay",
        description="Relay chat replies into tmux sessions",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    parser.add_argument("--port", type=int, default=3002, help="Listen port")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run the webhook server."""
    args = parse_args(argv)
    app = create_app(build_container())
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
