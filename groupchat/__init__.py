"""WebSocket group chat server tracking group members per server in Redis."""

__version__ = "0.1.0"
__all__ = ["__version__"]