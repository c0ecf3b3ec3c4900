"""Command line interface for commitdock."""
