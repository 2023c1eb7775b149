"""Collection driver and chunk sinks."""
