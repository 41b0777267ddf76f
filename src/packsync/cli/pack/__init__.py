"""Manage installed external packs."""
