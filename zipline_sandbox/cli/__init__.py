"""Command-line tools for sandbox maintenance."""
