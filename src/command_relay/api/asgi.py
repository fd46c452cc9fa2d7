"""ASGI entrypoint for the command relay API."""

from command_relay.api.app import create_app
from command_relay.containers import build_container

app = create_app(build_container())
