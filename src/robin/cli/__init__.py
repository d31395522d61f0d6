"""Command-line interface for Robin."""
