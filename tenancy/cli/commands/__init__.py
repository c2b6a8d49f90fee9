"""Tenancy CLI command groups."""
