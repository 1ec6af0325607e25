"""Locale-aware parsing of monetary strings into exact decimals.

Accepts formats like:
  - "1234.56" / "1,234.56" (en-US)
  - "1.234,56" / "R$ 1.234,56" (pt-BR)
  - "(1,234.56)" or "1234.56-" -> negative

Floats never enter the pipeline; every value is built from the digit string.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

DEFAULT_LOCALE = "en-US"

# Language subtags whose number formatting uses a comma decimal separator.
COMMA_DECIMAL_LANGUAGES = {"pt", "de", "es", "it", "fr", "nl"}

_CURRENCY_SYMBOL_PATTERN = re.compile(r"R\$|US\$|\$|€|£|¥")
# ISO 4217 codes only count at either end of the cell, e.g. "BRL 10,00" or "10.00 USD".
_CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}\s*|\s*[A-Z]{3}$")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_BODY_PATTERN = re.compile(r"[0-9.,]+")


class AmountParseError(ValueError):
    """Raised when a string cannot be read as an amount."""


def separators_for_locale(locale: Optional[str]) -> Tuple[str, str]:
    """Return ``(decimal, grouping)`` separators for a locale tag like ``pt-BR``."""
    tag = (locale or DEFAULT_LOCALE).replace("_", "-").strip().lower()
    language = tag.split("-", 1)[0]
    if language in COMMA_DECIMAL_LANGUAGES:
        return ",", "."
    return ".", ","


def _strip_grouping(integer_part: str, grouping: str, raw: str) -> str:
    if not integer_part:
        return "0"
    groups = integer_part.split(grouping)
    if len(groups) > 1:
        head, tail = groups[0], groups[1:]
        if not head or len(head) > 3 or any(len(group) != 3 for group in tail):
            raise AmountParseError(f"Misplaced digit grouping in amount '{raw}'")
    return "".join(groups)


def normalize_amount(
    raw: Optional[str],
    locale: Optional[str] = DEFAULT_LOCALE,
    *,
    decimal_separator: Optional[str] = None,
    grouping_separator: Optional[str] = None,
) -> Decimal:
    """Parse ``raw`` using the locale's separators and return an exact ``Decimal``.

    Explicit separators override the locale defaults. A lone grouping
    separator followed by anything but three digits is read as the decimal
    separator, so ``"850.50"`` is 850.50 even under pt-BR.
    """
    if raw is None or not str(raw).strip():
        raise AmountParseError("Amount value is missing")

    text = str(raw).strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = _CURRENCY_CODE_PATTERN.sub("", text)
    text = _CURRENCY_SYMBOL_PATTERN.sub("", text)
    text = _WHITESPACE_PATTERN.sub("", text)

    if text.startswith(("-", "+")):
        negative = negative or text[0] == "-"
        text = text[1:]
    elif text.endswith("-"):
        negative = True
        text = text[:-1]

    if not _BODY_PATTERN.fullmatch(text) or not any(char.isdigit() for char in text):
        raise AmountParseError(f"Unable to parse amount '{raw}'")

    decimal, grouping = separators_for_locale(locale)
    decimal = decimal_separator or decimal
    grouping = grouping_separator or grouping
    if decimal == grouping:
        raise AmountParseError("Decimal and grouping separators must differ")

    foreign = {",", "."} - {decimal, grouping}
    if any(char in text for char in foreign):
        raise AmountParseError(f"Unexpected separator in amount '{raw}'")

    if decimal in text:
        if text.count(decimal) > 1:
            raise AmountParseError(f"Multiple decimal separators in amount '{raw}'")
        integer_part, fraction = text.split(decimal)
        if grouping in fraction:
            raise AmountParseError(f"Misplaced digit grouping in amount '{raw}'")
        integer_part = _strip_grouping(integer_part, grouping, raw)
    elif text.count(grouping) == 1 and len(text.split(grouping)[1]) != 3:
        integer_part, fraction = text.split(grouping)
        integer_part = integer_part or "0"
    else:
        integer_part = _strip_grouping(text, grouping, raw)
        fraction = ""

    literal = f"{integer_part}.{fraction}" if fraction else integer_part
    try:
        amount = Decimal(literal)
    except InvalidOperation:
        raise AmountParseError(f"Unable to parse amount '{raw}'") from None

    return -amount if negative else amount


__all__ = ["AmountParseError", "DEFAULT_LOCALE", "normalize_amount", "separators_for_locale"]
