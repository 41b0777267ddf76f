"""Core library for packsync (packs, state, templates, settings, sync)."""
