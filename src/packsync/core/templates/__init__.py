"""Instructions document composition and placeholder substitution."""
from .composer import ComposeResult, check_freshness, compose_or_update, parse_sections
from .engine import find_unreplaced, substitute

__all__ = ["ComposeResult", "check_freshness", "compose_or_update", "parse_sections", "find_unreplaced", "substitute"]
