"""Database models."""

from .content_document import ContentDocument

__all__ = ["ContentDocument"]
