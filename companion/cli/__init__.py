"""CLI module for companion."""
