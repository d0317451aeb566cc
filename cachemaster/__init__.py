"""Master node for a distributed cache: heartbeat tracking, consistent hashing and a TCP server."""

__version__ = "0.1.0"
__all__ = ["__version__"]