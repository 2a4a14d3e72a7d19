"""A distributed key-value store: storage servers, a manager routing keys over a consistent hash ring, and a client."""

__version__ = "0.1.0"