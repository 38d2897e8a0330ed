"""Marp themes accepted for a deck, with the colors used when the client does not pick any."""
from typing import Dict, List, Tuple

DEFAULT_THEME = "default"

# theme -> (background color, text color)
THEMES: Dict[str, Tuple[str, str]] = {
    "default": ("white", "black"),
    "gaia": ("#fff", "#333"),
    "uncover": ("#333", "#fff"),
    "rose-pine": ("#191724", "#e0def4"),
}


def available_themes() -> List[str]:
    return sorted(THEMES)


def is_valid_theme(theme: str) -> bool:
    """Empty means the default theme; anything else must be a known theme name."""
    return not theme or theme in THEMES


def resolve_theme(theme: str) -> str:
    return theme if theme in THEMES else DEFAULT_THEME


def theme_colors(theme: str, background: str = "", text: str = "") -> Tuple[str, str]:
    """Return (background, text) colors; explicit client values win over the theme defaults."""
    default_bg, default_text = THEMES[resolve_theme((theme or "").lower())]
    return background or default_bg, text or default_text
