"""Shared utilities: logging setup and secret redaction."""
