"""Command-line interface for soul-registry."""
