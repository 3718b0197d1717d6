"""Murmur — real-time chat backend.

Users search for peers, open direct or group conversations, exchange
messages, and watch conversations live over WebSockets.
"""

__version__ = "0.1.0"
