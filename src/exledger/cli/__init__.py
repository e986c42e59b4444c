"""Command-line interface for exledger."""
