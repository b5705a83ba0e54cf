"""
Neutral contrast settings
=========================

The neutral contrast is the native contrast value a user calls "100%". It is
saved per monitor name and projected onto the probed monitors.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# monitor name -> neutral contrast (native units)
NeutralContrastSettings = Dict[str, int]


def resolve_neutral_contrast(
    name: str,
    max_contrast: int,
    settings: Optional[Mapping[str, int]] = None,
) -> int:
    """
    Determine the neutral contrast for a monitor.

    Args:
        name: Monitor name as reported by the display
        max_contrast: Native maximum contrast (must be >= 1)
        settings: Saved neutral contrast values keyed by monitor name

    Returns:
        Saved value clamped into [1, max_contrast], or max_contrast if
        nothing is saved for this monitor
    """
    if not settings or name not in settings:
        return max_contrast

    saved = settings[name]
    neutral = max(1, min(max_contrast, saved))
    if neutral != saved:
        logger.warning(
            f"Saved neutral contrast {saved} for '{name}' is outside 1-{max_contrast}, using {neutral}"
        )
    return neutral


def merge_neutral_contrast(
    settings: Mapping[str, int],
    updates: Mapping[str, int],
) -> NeutralContrastSettings:
    """Return a copy of settings with updates applied."""
    merged = dict(settings)
    merged.update(updates)
    return merged


def parse_neutral_assignments(assignments: Iterable[str]) -> NeutralContrastSettings:
    """
    Parse ``NAME=VALUE`` strings (as given on the command line).

    The value is split at the last '=' so monitor names may contain one.

    Raises:
        ValueError: If an entry has no '=' or a non-integer value
    """
    result: NeutralContrastSettings = {}
    for item in assignments:
        name, sep, value = item.rpartition('=')
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"Expected NAME=VALUE, got '{item}'")
        try:
            result[name] = int(value.strip())
        except ValueError:
            raise ValueError(f"Neutral contrast for '{name}' must be an integer, got '{value}'")
    return result
