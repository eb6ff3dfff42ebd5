"""Kiln utilities."""
