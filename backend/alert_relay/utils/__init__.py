"""Shared helpers."""
from .tokens import mask_token

__all__ = ["mask_token"]
