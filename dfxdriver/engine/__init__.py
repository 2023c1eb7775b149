"""Extraction engine interface and the DFX SDK adapter."""
