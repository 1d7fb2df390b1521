"""
Socket Bridge - real-time WebSocket message relay.

Any message a client sends is fanned out to every other connected client.
"""

# Installs the structured logger class before any submodule creates its logger
from socket_bridge.config import logging as _logging  # noqa: F401

__version__ = "1.0.0"
