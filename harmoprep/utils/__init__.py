"""Shared helpers: errors, logging and small filesystem utilities."""
