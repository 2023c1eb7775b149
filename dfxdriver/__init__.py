"""
Core package init for the DFX collection driver.

Makes the `dfxdriver` modules importable without requiring an editable install.
"""

__version__ = "0.1.0"

__all__ = [
    "annotations",
    "collection",
    "engine",
    "errors",
    "planning",
    "video",
    "viz",
    "io_utils",
    "types",
]
