"""ingestflow - fetch, dedupe, and fan out content into single-item pipeline jobs."""

__version__ = "0.1.0"
