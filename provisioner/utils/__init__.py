"""Utility functions for the provisioner."""

from provisioner.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
