"""Face annotation loading."""
