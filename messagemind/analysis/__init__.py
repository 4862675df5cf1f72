"""Conversation analysis: provider cascade, response decoding and heuristics."""
