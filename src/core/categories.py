"""Event categories — color lookup and admin-only categories."""

from __future__ import annotations

CATEGORY_COLORS: dict[str, str] = {
    "retreat": "#e91e63",      # pink
    "camp": "#2196f3",         # blue
    "day-off": "#4caf50",      # green
    "appointment": "#ff9800",  # orange
    "other": "#9c27b0",        # purple
}

DEFAULT_COLOR = CATEGORY_COLORS["other"]

# Only administrators may create events in these categories
RESTRICTED_CATEGORIES = frozenset({"camp", "retreat"})


def get_category_color(category: str | None) -> str:
    """Return the display color for a category, purple for unknown ones."""
    return CATEGORY_COLORS.get(category or "", DEFAULT_COLOR)
