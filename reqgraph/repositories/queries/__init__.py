"""Cypher statements used by the repositories."""
