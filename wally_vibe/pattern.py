"""
Vibration pattern parser

Parses strings like "0.5 3s/0.75 1.5s" into an ordered tuple of
PatternStep(intensity, duration_s).
"""

import logging
import math
import re
from typing import Optional

from .errors import PatternParseError
from .models import DEFAULT_PATTERN, Pattern, PatternStep

logger = logging.getLogger(__name__)

STEP_SEPARATOR = "/"
FIELD_SEPARATOR = " "
SECONDS_SUFFIX = "s"

_FLOAT_LITERAL = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def _parse_float(token: str, what: str, segment: str) -> float:
    if not _FLOAT_LITERAL.fullmatch(token):
        raise PatternParseError(f"invalid {what} {token!r} in step {segment!r}")
    return float(token)


def parse_step(segment: str) -> PatternStep:
    """
    Parse a single "<speed> <duration>s" segment.

    Raises:
        PatternParseError: If the segment is malformed
    """
    speed, sep, duration = segment.partition(FIELD_SEPARATOR)
    if not sep:
        raise PatternParseError(f"couldn't split step {segment!r} into speed and duration")

    intensity = _parse_float(speed, "speed", segment)

    if not duration.endswith(SECONDS_SUFFIX):
        raise PatternParseError(f"missing 's' on duration {duration!r} in step {segment!r}")
    duration_s = _parse_float(duration[:-len(SECONDS_SUFFIX)], "duration", segment)
    if duration_s < 0 or not math.isfinite(duration_s):
        raise PatternParseError(f"duration must be a non-negative number of seconds in step {segment!r}")

    return PatternStep(intensity=intensity, duration_s=duration_s)


def parse_pattern(text: str) -> Pattern:
    """
    Parse pattern text into steps.

    Grammar: step ('/' step)*, step := speed ' ' duration 's'.
    Speeds are passed through unclamped; the device layer decides what is valid.

    Args:
        text: Pattern text, e.g. "0.5 3s/0.75 1.5s"

    Returns:
        Tuple of PatternStep in input order

    Raises:
        PatternParseError: If any segment is malformed (no partial patterns)
    """
    return tuple(parse_step(segment) for segment in text.split(STEP_SEPARATOR))


def resolve_pattern(text: Optional[str]) -> Pattern:
    """Parse pattern text, falling back to DEFAULT_PATTERN when absent or invalid"""
    if text is None:
        return DEFAULT_PATTERN
    try:
        return parse_pattern(text)
    except PatternParseError as e:
        logger.warning(f"pattern error: {e}")
        logger.warning(f"using default pattern {format_pattern(DEFAULT_PATTERN)!r}")
        return DEFAULT_PATTERN


def format_pattern(pattern: Pattern) -> str:
    """Render a pattern back into its textual form"""
    return STEP_SEPARATOR.join(
        f"{step.intensity:g}{FIELD_SEPARATOR}{step.duration_s:g}{SECONDS_SUFFIX}"
        for step in pattern
    )
