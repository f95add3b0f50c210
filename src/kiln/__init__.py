"""Kiln - dependency fetching and native port builds for kiln packages."""

__version__ = "0.3.0"
