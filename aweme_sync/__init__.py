"""Short-video metadata sync and transcript enrichment service."""

__version__ = "0.1.0"
