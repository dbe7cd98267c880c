"""Last-mile delivery dispatch: address resolution and priority scheduling."""

__version__ = "0.1.0"
