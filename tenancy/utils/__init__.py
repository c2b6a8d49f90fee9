"""
Shared helpers for Tenancy modules.
"""
