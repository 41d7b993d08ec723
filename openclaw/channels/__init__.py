"""
Channel package.
"""

from openclaw.channels.base import Channel, IncomingMessage, MessageHandler, OutgoingMessage
from openclaw.channels.cli import CLIChannel

__all__ = [
    "Channel",
    "IncomingMessage",
    "OutgoingMessage",
    "MessageHandler",
    "CLIChannel",
]
