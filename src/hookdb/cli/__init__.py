"""Command-line interface for hookdb."""
