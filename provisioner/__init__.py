"""Provisioner: orchestrates infrastructure setup for new applications."""

__version__ = "0.1.0"
