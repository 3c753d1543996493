"""Command-line entry points for Tokemon."""
