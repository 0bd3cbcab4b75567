"""Data ingestion module - fetch handlers, handler configs and HTTP client."""
