"""Tenancy command-line interface."""
