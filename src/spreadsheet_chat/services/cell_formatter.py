"""Render spreadsheet cells as the display strings a viewer would show.

Values are formatted with the cell's number format code, so a cell holding
``1000`` with format ``"$"#,##0`` renders as ``$1,000`` and a date renders
with its date pattern instead of a serial number.

Only the parts of the number format language that affect visible text are
implemented: sections, literals, currency locales, thousands separators,
decimal places, percentages, scientific notation and date/time tokens.
Colors, conditions and padding characters are ignored.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from openpyxl.styles.numbers import BUILTIN_FORMATS, is_date_format
from openpyxl.utils.datetime import from_excel

from spreadsheet_chat.raw_workbook import RawCell

GENERAL = "General"

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
DAY_NAMES = [
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
]

# Builtin short date (id 14) is locale dependent; render it in US form.
LOCALE_DATE_FORMATS = {"mm-dd-yy": "m/d/yy"}

# Accounting formats 41-44. openpyxl's copy of id 44 lost its section
# separators, and xlsx files store the code itself rather than the id.
ACCOUNTING_FORMATS = {
    41: r'_(* #,##0_);_(* \(#,##0\);_(* "-"_);_(@_)',
    42: r'_("$"* #,##0_);_("$"* \(#,##0\);_("$"* "-"_);_(@_)',
    43: r'_(* #,##0.00_);_(* \(#,##0.00\);_(* "-"??_);_(@_)',
    44: r'_("$"* #,##0.00_);_("$"* \(#,##0.00\);_("$"* "-"??_);_(@_)',
}
_ACCOUNTING_BY_CODE = {
    BUILTIN_FORMATS[format_id]: code
    for format_id, code in ACCOUNTING_FORMATS.items()
    if format_id in BUILTIN_FORMATS
}

_DATE_TOKEN_RE = re.compile(
    r"\[h+\]|\[m+\]|\[s+\]|AM/PM|am/pm|A/P|a/p|y+|m+|d+|h+|s+",
    re.IGNORECASE,
)


def format_cell(cell: RawCell) -> str:
    """Return the display string for a raw cell."""
    return format_value(cell.value, cell.number_format, is_date=cell.is_date)


def format_value(value: Any, number_format: str | None = None, *, is_date: bool = False) -> str:
    """Format a single value using an Excel number format code.

    Args:
        value: Cell value as produced by the workbook parser.
        number_format: Format code, a builtin format id as a string, or None.
        is_date: Whether the parser already identified the cell as a date.

    Returns:
        The display string. Empty cells render as ``""``.
    """
    if value is None:
        return ""

    fmt = _resolve_format(number_format)

    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"

    if isinstance(value, str):
        return value

    if isinstance(value, (datetime, date, time)):
        return _format_temporal(value, fmt)

    if isinstance(value, timedelta):
        return _format_duration(value, fmt)

    if isinstance(value, (int, float, Decimal)):
        if (is_date or is_date_format(fmt)) and fmt != GENERAL:
            try:
                converted = from_excel(float(value))
            except (OverflowError, ValueError):
                return format_number(value, GENERAL)
            if converted is not None:
                return _format_temporal(converted, fmt)
        return format_number(value, fmt)

    return str(value)


def _resolve_format(number_format: str | None) -> str:
    if not number_format:
        return GENERAL
    if number_format.isdigit():
        format_id = int(number_format)
        number_format = ACCOUNTING_FORMATS.get(format_id) or BUILTIN_FORMATS.get(
            format_id, GENERAL
        )
    number_format = _ACCOUNTING_BY_CODE.get(number_format, number_format)
    return LOCALE_DATE_FORMATS.get(number_format, number_format)


# =============================================================================
# Sections and literals
# =============================================================================


def _split_sections(fmt: str) -> list[str]:
    """Split a format code on ``;`` outside quotes and escapes."""
    sections: list[str] = []
    current: list[str] = []
    in_quotes = False
    escaped = False
    for char in fmt:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == '"':
            current.append(char)
            in_quotes = not in_quotes
        elif char == ";" and not in_quotes:
            sections.append("".join(current))
            current = []
        else:
            current.append(char)
    sections.append("".join(current))
    return sections


def _pick_section(fmt: str, value: float) -> tuple[str, bool]:
    """Choose the section for a value.

    Returns:
        The section and whether a minus sign must still be added.
    """
    sections = _split_sections(fmt)
    # An empty negative or zero section hides the value.
    if value < 0 and len(sections) >= 2:
        return sections[1], False
    if value == 0 and len(sections) >= 3:
        return sections[2], False
    return sections[0], value < 0


def _tokenize(section: str) -> list[tuple[str, str]]:
    """Break a number format section into literal and numeric tokens."""
    tokens: list[tuple[str, str]] = []
    i = 0
    length = len(section)
    while i < length:
        char = section[i]
        if char == '"':
            end = section.find('"', i + 1)
            end = length if end == -1 else end
            tokens.append(("lit", section[i + 1 : end]))
            i = end + 1
        elif char == "\\" and i + 1 < length:
            tokens.append(("lit", section[i + 1]))
            i += 2
        elif char == "_" and i + 1 < length:
            tokens.append(("lit", " "))
            i += 2
        elif char == "*" and i + 1 < length:
            i += 2
        elif char == "[":
            end = section.find("]", i)
            end = length if end == -1 else end
            inner = section[i + 1 : end]
            if inner.startswith("$"):
                tokens.append(("lit", inner[1:].split("-", 1)[0]))
            i = end + 1
        elif char in "0#?" or (
            char == "." and i + 1 < length and section[i + 1] in "0#?"
        ):
            start = i
            while i < length:
                current = section[i]
                if current in "0#?,.":
                    i += 1
                elif current in "Ee" and i + 1 < length and section[i + 1] in "+-":
                    i += 2
                else:
                    break
            tokens.append(("num", section[start:i]))
        elif char == "%":
            tokens.append(("pct", "%"))
            i += 1
        else:
            tokens.append(("lit", char))
            i += 1
    return tokens


# =============================================================================
# Numbers
# =============================================================================


def format_general(value: float | int | Decimal) -> str:
    """Format a number the way the General format shows it."""
    if isinstance(value, int):
        return str(value)
    number = float(value)
    if number.is_integer() and abs(number) < 1e15:
        return str(int(number))
    text = format(number, ".15g")
    if "e" in text:
        mantissa, exponent = text.split("e")
        sign = exponent[0]
        digits = exponent[1:].lstrip("0").rjust(2, "0")
        text = f"{mantissa}E{sign}{digits}"
    return text


def format_number(value: float | int | Decimal, fmt: str) -> str:
    """Format a numeric value with a non-date number format code."""
    if fmt == GENERAL or fmt == "@":
        return format_general(value)

    section, needs_sign = _pick_section(fmt, float(value))
    if not section:
        return ""
    if section.strip().upper() == GENERAL.upper():
        text = format_general(abs(value))
        return f"-{text}" if needs_sign else text

    tokens = _tokenize(section)
    numeric = [text for kind, text in tokens if kind == "num"]
    if len(numeric) != 1:
        # Fractions and multi-part patterns are shown in General form.
        literal = "".join(text for kind, text in tokens if kind != "num")
        if not numeric:
            return literal.strip() or format_general(value)
        return format_general(value)

    scaled = Decimal(str(abs(value)))
    percent_count = sum(1 for kind, _ in tokens if kind == "pct")
    scaled *= Decimal(100) ** percent_count

    rendered = _render_digits(scaled, numeric[0])
    parts = [rendered if kind == "num" else text for kind, text in tokens]
    text = "".join(parts).strip()
    if needs_sign and _has_nonzero_digit(rendered):
        text = f"-{text}"
    return text


def _has_nonzero_digit(text: str) -> bool:
    return any(char.isdigit() and char != "0" for char in text)


def _render_digits(value: Decimal, pattern: str) -> str:
    """Render an absolute value against a digit pattern like ``#,##0.00``."""
    upper = pattern.upper()
    if "E" in upper:
        return _render_scientific(value, upper)

    integer_part, _, fraction_part = pattern.partition(".")

    # Trailing commas scale by thousands.
    while integer_part.endswith(","):
        value /= 1000
        integer_part = integer_part[:-1]

    use_grouping = "," in integer_part
    min_integer_digits = integer_part.count("0")
    max_decimals = sum(1 for char in fraction_part if char in "0#?")
    min_decimals = sum(1 for char in fraction_part if char in "0?")

    try:
        quantum = Decimal(1).scaleb(-max_decimals)
        rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return format_general(float(value))

    text = f"{rounded:.{max_decimals}f}"
    whole, _, decimals = text.partition(".")

    if len(decimals) > min_decimals:
        decimals = decimals.rstrip("0")
        if len(decimals) < min_decimals:
            decimals = decimals.ljust(min_decimals, "0")

    if whole == "0" and min_integer_digits == 0:
        whole = ""
    whole = whole.rjust(min_integer_digits, "0")

    if use_grouping and whole:
        whole = f"{int(whole):,}".rjust(min_integer_digits, "0")

    if decimals:
        return f"{whole}.{decimals}"
    if not whole:
        # Zero against an all-# or all-? pattern shows blanks.
        return " " * integer_part.count("?")
    return whole


def _render_scientific(value: Decimal, pattern: str) -> str:
    mantissa_pattern, _, exponent_pattern = pattern.partition("E")
    _, _, fraction_part = mantissa_pattern.partition(".")
    decimals = sum(1 for char in fraction_part if char in "0#?")
    exponent_digits = max(sum(1 for char in exponent_pattern if char in "0#"), 1)

    text = f"{float(value):.{decimals}E}"
    mantissa, exponent = text.split("E")
    sign = exponent[0]
    digits = exponent[1:].lstrip("0").rjust(exponent_digits, "0")
    if sign == "+" and "+" not in exponent_pattern:
        sign = ""
    return f"{mantissa}E{sign}{digits}"


# =============================================================================
# Dates and times
# =============================================================================


def _format_temporal(value: datetime | date | time, fmt: str) -> str:
    if fmt == GENERAL or not is_date_format(fmt):
        if isinstance(value, datetime):
            if value.time() == time(0, 0):
                return value.date().isoformat()
            return value.isoformat(sep=" ", timespec="seconds")
        if isinstance(value, time):
            return value.isoformat(timespec="seconds")
        return value.isoformat()

    if isinstance(value, time):
        value = datetime.combine(date(1899, 12, 31), value)
    elif not isinstance(value, datetime):
        value = datetime.combine(value, time(0, 0))

    section = _split_sections(fmt)[0]
    return _render_date_section(value, section)


def _format_duration(value: timedelta, fmt: str) -> str:
    if fmt != GENERAL:
        # Elapsed tokens such as [h] count from the same origin.
        return _render_date_section(
            datetime(1899, 12, 31) + value, _split_sections(fmt)[0]
        )
    total_seconds = int(value.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


def _render_date_section(value: datetime, section: str) -> str:
    """Render a datetime against one date/time format section."""
    pieces: list[tuple[str, str]] = []
    i = 0
    length = len(section)
    while i < length:
        char = section[i]
        if char == '"':
            end = section.find('"', i + 1)
            end = length if end == -1 else end
            pieces.append(("lit", section[i + 1 : end]))
            i = end + 1
            continue
        if char == "\\" and i + 1 < length:
            pieces.append(("lit", section[i + 1]))
            i += 2
            continue
        if char in "_*" and i + 1 < length:
            i += 2
            continue
        match = _DATE_TOKEN_RE.match(section, i)
        if match:
            pieces.append(("tok", match.group(0)))
            i = match.end()
            continue
        if char == "[":
            end = section.find("]", i)
            i = length if end == -1 else end + 1
            continue
        pieces.append(("lit", char))
        i += 1

    tokens = [text.lower() for kind, text in pieces if kind == "tok"]
    twelve_hour = any(token in ("am/pm", "a/p") for token in tokens)

    output: list[str] = []
    token_index = -1
    for kind, text in pieces:
        if kind == "lit":
            output.append(text)
            continue
        token_index += 1
        token = text.lower()
        if token.startswith("m") and _is_minute_token(tokens, token_index):
            output.append(_render_minutes(value, token))
        else:
            output.append(_render_token(value, token, text, twelve_hour))
    return "".join(output)


def _is_minute_token(tokens: list[str], index: int) -> bool:
    previous = tokens[index - 1] if index > 0 else ""
    following = tokens[index + 1] if index + 1 < len(tokens) else ""
    return previous.startswith(("h", "[h")) or following.startswith(("s", "[s"))


def _render_minutes(value: datetime, token: str) -> str:
    return f"{value.minute:02d}" if len(token) >= 2 else str(value.minute)


def _render_token(value: datetime, token: str, original: str, twelve_hour: bool) -> str:
    if token.startswith("y"):
        return f"{value.year:04d}" if len(token) > 2 else f"{value.year % 100:02d}"
    if token.startswith("m"):
        if len(token) >= 5:
            return MONTH_NAMES[value.month - 1][0]
        if len(token) == 4:
            return MONTH_NAMES[value.month - 1]
        if len(token) == 3:
            return MONTH_NAMES[value.month - 1][:3]
        return f"{value.month:02d}" if len(token) == 2 else str(value.month)
    if token.startswith("d"):
        if len(token) >= 4:
            return DAY_NAMES[value.weekday()]
        if len(token) == 3:
            return DAY_NAMES[value.weekday()][:3]
        return f"{value.day:02d}" if len(token) == 2 else str(value.day)
    if token.startswith("h"):
        hour = value.hour
        if twelve_hour:
            hour = hour % 12 or 12
        return f"{hour:02d}" if len(token) >= 2 else str(hour)
    if token.startswith("s"):
        return f"{value.second:02d}" if len(token) >= 2 else str(value.second)
    if token.startswith("[h"):
        elapsed = value - datetime(1899, 12, 31)
        return str(int(elapsed.total_seconds() // 3600))
    if token.startswith("[m"):
        elapsed = value - datetime(1899, 12, 31)
        return str(int(elapsed.total_seconds() // 60))
    if token.startswith("[s"):
        elapsed = value - datetime(1899, 12, 31)
        return str(int(elapsed.total_seconds()))
    if token == "am/pm":
        marker = "AM" if value.hour < 12 else "PM"
        return marker if original[0].isupper() else marker.lower()
    if token == "a/p":
        marker = "A" if value.hour < 12 else "P"
        return marker if original[0].isupper() else marker.lower()
    return original
