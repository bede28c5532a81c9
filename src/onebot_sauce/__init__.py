"""Reverse image source lookup for OneBot chat bridges."""

__version__ = "0.3.0"
