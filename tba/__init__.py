"""Travel behavior timeline: event merge and day segmentation."""

__version__ = "0.3.0"
