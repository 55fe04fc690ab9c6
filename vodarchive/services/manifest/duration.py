"""
Duration extraction — total playlist length from its #EXTINF directives.
"""
from __future__ import annotations

import logging
import math
from typing import Optional

logger = logging.getLogger(__name__)

DURATION_DIRECTIVE = "#EXTINF:"


def round_half_up(value: float) -> int:
    """10.5 → 11, 10.49 → 10. Python's round() would give 10 for 10.5."""
    return int(math.floor(value + 0.5))


def parse_duration_value(line: str) -> Optional[float]:
    """Seconds declared by one ``#EXTINF:<duration>[,<title>]`` line, or None if malformed."""
    raw = line.strip()[len(DURATION_DIRECTIVE):].split(",", 1)[0].strip()
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


def compute_duration(manifest_text: str) -> Optional[int]:
    """
    Sum every well-formed segment duration and round half-up to whole seconds.

    Returns None when no usable duration directive exists; 0 is a real answer
    for playlists whose segments all declare zero length.
    """
    total = 0.0
    found = 0
    skipped = 0
    for line in manifest_text.splitlines():
        if not line.strip().startswith(DURATION_DIRECTIVE):
            continue
        value = parse_duration_value(line)
        if value is None:
            skipped += 1
            continue
        total += value
        found += 1

    if skipped:
        logger.debug(f"Skipped {skipped} malformed duration directive(s)")
    if not found:
        return None
    return round_half_up(total)
