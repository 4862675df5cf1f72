"""Conversation analysis and semantic search over chat messages."""
