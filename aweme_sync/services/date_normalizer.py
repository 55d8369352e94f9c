"""
Publish-time normalization.

Upstream sends publish times as compact dates, calendar strings, or epoch values in
seconds or milliseconds. Everything is reduced to a UTC millisecond timestamp, and
values outside the plausible range are rejected.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from common_py.logging_config import configure_logging
from aweme_sync.config_loader import config
from aweme_sync.services.exceptions import ParseError

logger = configure_logging("aweme-sync:date_normalizer", log_level=config.LOG_LEVEL)

MIN_YEAR = 2010
MAX_YEAR = 2030
# Epoch values below this are seconds
SECONDS_THRESHOLD = 10_000_000_000

_COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_CALENDAR_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})(.*)$")
_DIGITS = re.compile(r"^\d+$")


def _utc_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _parse_compact(match: "re.Match[str]", raw: str) -> int:
    year, month, day = (int(part) for part in match.groups())
    try:
        moment = datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        raise ParseError(f"Invalid calendar date: {raw}", raw_value=raw) from None
    if (moment.year, moment.month, moment.day) != (year, month, day):
        raise ParseError(f"Invalid calendar date: {raw}", raw_value=raw)
    return _utc_ms(moment)


def _parse_calendar(match: "re.Match[str]", raw: str) -> int:
    year, month, day, rest = match.groups()
    rest = rest.strip()
    if rest.startswith("T"):
        rest = rest[1:]
    iso = f"{year}-{int(month):02d}-{int(day):02d}"
    if rest:
        iso = f"{iso}T{rest.replace('Z', '+00:00')}"
    try:
        return _utc_ms(datetime.fromisoformat(iso))
    except ValueError:
        raise ParseError(f"Unparseable date: {raw}", raw_value=raw) from None


def _parse_number(value: float, raw: Any) -> int:
    if not math.isfinite(value):
        raise ParseError(f"Non-finite timestamp: {raw}", raw_value=raw)
    return int(value * 1000) if value < SECONDS_THRESHOLD else int(value)


def _candidate_ms(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ParseError(f"Unsupported publish time type: {type(raw).__name__}", raw_value=raw)
    if isinstance(raw, (int, float)):
        return _parse_number(raw, raw)
    if not isinstance(raw, str):
        raise ParseError(f"Unsupported publish time type: {type(raw).__name__}", raw_value=raw)

    text = raw.strip()
    match = _COMPACT_DATE.match(text)
    if match:
        return _parse_compact(match, text)
    match = _CALENDAR_DATE.match(text)
    if match:
        return _parse_calendar(match, text)
    if _DIGITS.match(text):
        value = int(text)
        return value * 1000 if len(text) <= 10 else value
    raise ParseError(f"Unrecognized publish time: {raw}", raw_value=raw)


def parse_publish_time(raw: Any) -> int:
    """
    Convert a raw publish time to UTC epoch milliseconds.

    Precedence: 8-digit YYYYMMDD, then Y-M-D (or Y/M/D) strings, then digit strings
    (10 digits or fewer are seconds), then numbers (below 1e10 are seconds).

    Raises:
        ParseError: the value matches no rule, is not a real date, or falls outside 2010..2030
    """
    if raw is None or raw == "":
        raise ParseError("Empty publish time", raw_value=raw)
    ms = _candidate_ms(raw)
    try:
        year = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).year
    except (OverflowError, OSError, ValueError):
        raise ParseError(f"Timestamp out of range: {raw}", raw_value=raw) from None
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ParseError(f"Publish year {year} outside {MIN_YEAR}..{MAX_YEAR}: {raw}", raw_value=raw)
    return ms


def normalize_publish_time(raw: Any, aweme_id: Optional[str] = None) -> Optional[int]:
    """Like `parse_publish_time`, but unparseable input yields None and a debug log."""
    try:
        return parse_publish_time(raw)
    except ParseError as e:
        if raw not in (None, ""):
            logger.debug("Leaving publish time unset", aweme_id=aweme_id, raw=raw, reason=str(e))
        return None
