"""Incremental catalog synchronization from a product-information channel."""

__version__ = "0.1.0"
