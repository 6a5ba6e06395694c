"""Graph repositories, one per store."""
