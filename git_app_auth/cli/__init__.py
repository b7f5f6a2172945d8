"""Command-line interface commands."""
