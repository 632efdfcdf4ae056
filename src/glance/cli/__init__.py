"""Command-line interface for glance."""
