"""Browser-style interactive terminal bridge over a single websocket."""

__version__ = "0.1.0"
