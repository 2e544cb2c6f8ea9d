"""Field value normalization.

Turns sanitized display strings into the absolute forms stored on a ticker
record: share counts as integers, currency amounts in units, percentages as
canonical ``"<n>%"`` strings. Values that are already normalized pass
through unchanged, so transforming twice is the same as transforming once.
"""

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from src.exceptions import ParseSkip
from src.models import CanonicalKey, FieldKey, ScalarValue

K = CanonicalKey

SHARE_KEYS: frozenset[CanonicalKey] = frozenset(
    {
        K.SHORT_INTEREST,
        K.FINRA_EXEMPT_VOLUME,
        K.SHORT_SHARES_AVAILABLE,
        K.FAILURE_TO_DELIVER,
        K.FLOAT,
        K.SHARES_OUTSTANDING,
    }
)
CURRENCY_KEYS: frozenset[CanonicalKey] = frozenset(
    {K.MARKET_CAP, K.ENTERPRISE_VALUE, K.ESTIMATED_CASH}
)
PERCENT_KEYS: frozenset[CanonicalKey] = frozenset(
    {K.INSTITUTIONAL_OWNERSHIP, K.SHORT_INTEREST_PERCENT_FLOAT, K.COST_TO_BORROW}
)

# Bare figures below this on float/sharesOutstanding are quoted in millions.
# Fragile: a genuinely tiny float of e.g. 850000 shares written without
# separators is read as 850 billion.
MILLIONS_THRESHOLD = Decimal(1_000_000)

MULTIPLIERS: dict[str, Decimal] = {
    "k": Decimal(1_000),
    "thousand": Decimal(1_000),
    "m": Decimal(1_000_000),
    "mm": Decimal(1_000_000),
    "mil": Decimal(1_000_000),
    "mln": Decimal(1_000_000),
    "mn": Decimal(1_000_000),
    "million": Decimal(1_000_000),
    "b": Decimal(1_000_000_000),
    "bn": Decimal(1_000_000_000),
    "bil": Decimal(1_000_000_000),
    "billion": Decimal(1_000_000_000),
    "t": Decimal(1_000_000_000_000),
    "tn": Decimal(1_000_000_000_000),
    "trillion": Decimal(1_000_000_000_000),
}

# Share and currency wording carries no magnitude; removed before matching.
_UNIT_WORDS = re.compile(
    r"(?:shares?|shs)\b\.?|\b(?:usd|eur|gbp|jpy|cad)\b|[$€£¥]", re.IGNORECASE
)
_SPACED_SIGN = re.compile(r"([-+])\s+(?=[\d.])")
# A number is a whole token, never part of a longer digit run.
_AMOUNT = re.compile(
    r"(?<!\d)(?<!\d[,.])(?P<number>[-+]?(?:\d[\d,]*(?:\.\d+)?|\.\d+))(?!\d|[,.]\d)"
    r"(?P<gap>\s*)(?P<suffix>[a-z]+)?",
    re.IGNORECASE,
)
_NUMBER = re.compile(r"[-+]?(?:\d[\d,]*(?:\.\d+)?|\.\d+)")


def _decimal(key: CanonicalKey, token: str) -> Decimal:
    try:
        return Decimal(token.replace(",", ""))
    except InvalidOperation as exc:
        raise ParseSkip(key.value, token, "malformed number") from exc


def _integral(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))


def _number_or_int(amount: Decimal) -> int | float:
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def format_percent(amount: Decimal) -> str:
    """Canonical percent text with trailing zeros trimmed.

    Example:
        >>> format_percent(Decimal("12.50"))
        '12.5%'
    """
    text = f"{amount.normalize():f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text}%"


class FieldTransformer:
    """Normalizes values per field kind; raises ParseSkip when it cannot."""

    def transform(self, key: FieldKey, value: ScalarValue) -> ScalarValue:
        if key in SHARE_KEYS:
            return self._shares(key, value)
        if key in CURRENCY_KEYS:
            return self._currency(key, value)
        if key in PERCENT_KEYS:
            return self._percent(key, value)
        return value

    def _shares(self, key: CanonicalKey, value: ScalarValue) -> int:
        if not isinstance(value, str):
            return _integral(self._finite(key, value))

        amount, suffix = self._parse_amount(key, value)
        if suffix is not None:
            amount *= MULTIPLIERS[suffix]
        elif key in (K.FLOAT, K.SHARES_OUTSTANDING) and abs(amount) < MILLIONS_THRESHOLD:
            amount *= MULTIPLIERS["m"]
        return _integral(amount)

    def _currency(self, key: CanonicalKey, value: ScalarValue) -> int | float:
        if not isinstance(value, str):
            return _number_or_int(self._finite(key, value))

        amount, suffix = self._parse_amount(key, value)
        if suffix is not None:
            amount *= MULTIPLIERS[suffix]
        return _number_or_int(amount)

    def _percent(self, key: CanonicalKey, value: ScalarValue) -> str:
        if not isinstance(value, str):
            return format_percent(self._finite(key, value))

        match = _NUMBER.search(value)
        if match is None:
            raise ParseSkip(key.value, value, "no numeric token")
        return format_percent(_decimal(key, match.group()))

    @staticmethod
    def _parse_amount(key: CanonicalKey, value: str) -> tuple[Decimal, str | None]:
        """First whole number in ``value`` and its multiplier suffix, if any.

        Letters glued to the number must be a known multiplier; a separate
        word after it is trailing text and ignored.
        """
        text = _UNIT_WORDS.sub("", value.replace("\u2212", "-"))
        match = _AMOUNT.search(_SPACED_SIGN.sub(r"\1", text))
        if match is None:
            raise ParseSkip(key.value, value, "no numeric token")
        amount = _decimal(key, match.group("number"))

        suffix = match.group("suffix")
        if suffix is None:
            return amount, None
        unit = suffix.lower()
        if unit in MULTIPLIERS:
            return amount, unit
        if not match.group("gap"):
            raise ParseSkip(key.value, value, f"unknown unit '{suffix}'")
        return amount, None

    @staticmethod
    def _finite(key: CanonicalKey, value: int | float) -> Decimal:
        if isinstance(value, bool) or (isinstance(value, float) and not math.isfinite(value)):
            raise ParseSkip(key.value, value, "not a finite number")
        return Decimal(str(value))
