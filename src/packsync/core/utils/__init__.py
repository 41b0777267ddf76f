"""Shared utilities for packsync core modules."""
