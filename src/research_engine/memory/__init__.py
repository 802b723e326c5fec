"""Similarity-searchable memory of extracted text fragments."""

from .models import MemoryEntry, SimilarityMatch
from .store import MemoryStore

__all__ = [
    "MemoryEntry",
    "MemoryStore",
    "SimilarityMatch",
]
