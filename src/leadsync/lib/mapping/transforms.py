"""Value transforms applied to resolved candidates.

Every transform either returns a coerced value or raises ``TransformError``;
the resolver turns that into a soft, per-field failure.
"""

import math
import re
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

from dateutil.parser import isoparse
from dateutil.parser import parse as parse_date

from leadsync.lib.mapping.rules import Transform

_CURRENCY_SYMBOLS = re.compile(r"(R\$|US\$|\$|€|£|BRL|USD|EUR)", re.IGNORECASE)
_NUMERIC_BODY = re.compile(r"^[-+]?[\d.,]+$")

# dd/mm/yyyy, dd-mm-yyyy, optionally followed by HH:MM[:SS]
_LOCAL_DATE = re.compile(
    r"^(?P<day>\d{1,2})[/-](?P<month>\d{1,2})[/-](?P<year>\d{4})"
    r"(?:[ T](?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?)?$"
)

_TRUE_VALUES = frozenset({"true", "t", "1", "yes", "y", "sim", "s", "on"})
_FALSE_VALUES = frozenset({"false", "f", "0", "no", "n", "não", "nao", "off"})


class TransformError(ValueError):
    """Raised when a value cannot be coerced by a transform."""


def to_identity(value: Any) -> Any:
    """Return the value unchanged, trimming surrounding whitespace from strings."""
    return value.strip() if isinstance(value, str) else value


def _normalize_separators(text: str) -> str:
    """Turn a locale-formatted number body into a float()-compatible string."""
    has_comma = "," in text
    has_dot = "." in text
    if has_comma and has_dot:
        # The right-most separator is the decimal mark
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if has_comma:
        if text.count(",") == 1:
            return text.replace(",", ".")
        return text.replace(",", "")
    if has_dot and text.count(".") > 1:
        return text.replace(".", "")
    return text


def to_number(value: Any) -> int | float:
    """Coerce a value to a number.

    Accepts native numbers, composite currency strings such as ``"6|BRL"``
    (the leading numeric portion is used), and locale-formatted strings
    such as ``"R$ 1.234,56"``.

    Raises:
        TransformError: If no number can be extracted.
    """
    if isinstance(value, bool):
        msg = f"Boolean {value!r} is not a number"
        raise TransformError(msg)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            msg = f"Non-finite number {value!r}"
            raise TransformError(msg)
        return value

    text = str(value).strip()
    if "|" in text:
        text = text.split("|", 1)[0].strip()
    text = _CURRENCY_SYMBOLS.sub("", text).replace(" ", "").replace(" ", "")
    if not text or not _NUMERIC_BODY.match(text):
        msg = f"Invalid numeric value: {value!r}"
        raise TransformError(msg)

    try:
        number = float(_normalize_separators(text))
    except ValueError as exc:
        msg = f"Invalid numeric value: {value!r}"
        raise TransformError(msg) from exc
    return int(number) if number.is_integer() else number


def to_boolean(value: Any) -> bool:
    """Coerce common textual and numeric flags to a bool.

    Raises:
        TransformError: If the value is not a recognised flag.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    msg = f"Value {value!r} cannot be converted to boolean"
    raise TransformError(msg)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    match = _LOCAL_DATE.match(text)
    if match:
        parts = match.groupdict()
        try:
            return datetime(
                int(parts["year"]),
                int(parts["month"]),
                int(parts["day"]),
                int(parts["hour"] or 0),
                int(parts["minute"] or 0),
                int(parts["second"] or 0),
            )
        except ValueError as exc:
            msg = f"Invalid date: {value!r}"
            raise TransformError(msg) from exc

    if text.isdigit() and len(text) >= 10:
        # Epoch milliseconds (13 digits) or seconds (10 digits)
        seconds = int(text) / 1000 if len(text) >= 13 else int(text)
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError) as exc:
            msg = f"Invalid epoch timestamp: {value!r}"
            raise TransformError(msg) from exc

    try:
        return isoparse(text)
    except ValueError:
        pass
    try:
        return parse_date(text, dayfirst=True)
    except (ValueError, OverflowError) as exc:
        msg = f"Unparseable date: {value!r}"
        raise TransformError(msg) from exc


def to_date(value: Any) -> date:
    """Parse ISO or ``dd/mm/yyyy``-style input into a calendar date.

    Raises:
        TransformError: If the value is not a recognisable date.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return _parse_datetime(value).date()


def to_timestamp(value: Any) -> datetime:
    """Parse a date/time into a timezone-aware UTC datetime.

    Naive inputs are assumed to be UTC.

    Raises:
        TransformError: If the value is not a recognisable timestamp.
    """
    parsed = _parse_datetime(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


TRANSFORMS: dict[Transform, Callable[[Any], Any]] = {
    Transform.IDENTITY: to_identity,
    Transform.NUMERIC: to_number,
    Transform.BOOLEAN: to_boolean,
    Transform.DATE: to_date,
    Transform.TIMESTAMP: to_timestamp,
}


def apply_transform(transform: Transform | str, value: Any) -> Any:
    """Apply the named transform to a value.

    Raises:
        TransformError: If the value cannot be coerced.
    """
    return TRANSFORMS[Transform(transform)](value)
