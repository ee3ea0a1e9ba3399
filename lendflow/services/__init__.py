"""Shared parsing and validation services."""
