"""Data access repositories."""

from .document_repository import ContentDocumentRepository

__all__ = ["ContentDocumentRepository"]
