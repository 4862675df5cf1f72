"""Semantic index over chat messages."""

from messagemind.index.vector_store import VectorIndex

__all__ = ["VectorIndex"]
