"""Shared helpers: parsing, config, storage, retry, HTTP and metrics."""
