"""Top-level packsync commands (no domain prefix)."""
