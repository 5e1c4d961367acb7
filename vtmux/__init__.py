"""Addresses, framing and demultiplexing for many logical connections over one stream."""

__version__ = "0.1.0"
__all__ = ["__version__"]