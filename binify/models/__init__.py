"""Database models."""

from binify.models.paste import Paste

__all__ = [
    "Paste",
]
