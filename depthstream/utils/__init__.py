"""Utility helpers."""

from depthstream.utils.log_setup import configure_logging

__all__ = ["configure_logging"]
