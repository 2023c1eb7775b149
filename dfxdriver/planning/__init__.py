"""Chunk sizing for collection runs."""
