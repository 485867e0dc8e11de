"""Media Butler: dedupe, transcode and sync local media to object storage."""

__version__ = "0.1.0"
