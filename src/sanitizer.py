"""Value sanitization and keep/discard classification.

Scraped values arrive with non-breaking spaces, zero-width joiners and
layout whitespace, and a label match often captures a sentence of
surrounding narrative instead of a number. This module cleans value text
and decides whether it is data worth keeping for a given field.

Numeric and financial fields must look numeric; profile fields such as
sector or exchange are legitimately free text and are only rejected when
they read like explanatory prose.
"""

import re
import unicodedata

from config.settings import GlobalConfig, get_config
from src.canonicalizer import is_blacklisted
from src.models import CanonicalKey, FieldKey

K = CanonicalKey

FREE_TEXT_KEYS: frozenset[CanonicalKey] = frozenset(
    {
        K.SECTOR,
        K.INDUSTRY,
        K.COUNTRY,
        K.EXCHANGE,
        K.DESCRIPTION,
        K.MARKET_CAP,
        K.ENTERPRISE_VALUE,
        K.INSTITUTIONAL_OWNERSHIP,
        K.LAST_DATA_UPDATE,
    }
)

_INVISIBLE = re.compile("[\u200b-\u200f\u2060\ufeff\u00ad]")
_WHITESPACE = re.compile(r"\s+")
_EDGE_SEPARATORS = "|•·,; "

_DIGIT = re.compile(r"\d")
_MONEY_OR_PERCENT = re.compile(r"[$€£¥%]")
_UNIT_KEYWORD = re.compile(
    r"\b(?:shares?|days?|volume|rate|float|borrow|exempt|deliver)\b", re.IGNORECASE
)
_ALPHA_TOKEN = re.compile(r"^[A-Za-z][A-Za-z&/'.-]*$")

_CLAUSE_BREAK = re.compile(r"[.!?;](?:\s|$)")
_CONNECTIVES = re.compile(
    r"\b(?:which|because|however|therefore|whereas|although|in order to|"
    r"for example|such as|refers to|is calculated|are calculated|is defined|"
    r"this (?:figure|number|value|data|metric) (?:represents|reflects|shows|is))\b",
    re.IGNORECASE,
)

# Labels that leak into an exchange value when a whole header strip is captured.
_FOREIGN_LABELS = re.compile(
    r"\b(?:Mkt Cap|Market Cap|Enterprise Value|Float|Shares Outstanding|Inst\.?\s*Own|"
    r"Sector|Industry|Country)\b",
    re.IGNORECASE,
)
_EXCHANGE_NAME = re.compile(
    r"^(?:NASDAQ|NYSE(?:\s*(?:American|Arca|MKT))?|AMEX|OTC(?:Q[XB])?|CBOE|TSXV?|LSE|ASX)$",
    re.IGNORECASE,
)
_EXCHANGE_CODE = re.compile(r"^[A-Z]{2,6}$")


def sanitize(raw: str | None) -> str:
    """Normalize Unicode, drop invisible characters and collapse whitespace.

    Example:
        >>> sanitize("\\u00a012.5M\\u200b  shares ")
        '12.5M shares'
    """
    if raw is None:
        return ""
    text = _INVISIBLE.sub("", str(raw))
    text = unicodedata.normalize("NFKC", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip(_EDGE_SEPARATORS)


class ValueClassifier:
    """Decides whether a sanitized value is data for a given field.

    Attributes:
        config: GlobalConfig holding the length heuristics.
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()

    def classify(self, raw: str | None, key: FieldKey | None) -> str | None:
        """Return the cleaned value when it should be kept, else None."""
        cleaned = sanitize(raw)
        if not cleaned or key is None or is_blacklisted(key.value):
            return None

        if key in FREE_TEXT_KEYS:
            if self.looks_like_prose(cleaned):
                return None
            if key is K.EXCHANGE and self.looks_like_label_dump(cleaned):
                return None
            return cleaned

        return cleaned if self.is_value_like(cleaned) else None

    def is_value_like(self, value: str) -> bool:
        """True when a value looks like a number, amount or short code."""
        if _DIGIT.search(value) or _MONEY_OR_PERCENT.search(value):
            return True
        if _UNIT_KEYWORD.search(value):
            return True
        return len(value) <= self.config.short_token_max_length and bool(
            _ALPHA_TOKEN.match(value)
        )

    def looks_like_prose(self, value: str) -> bool:
        """True for explanatory sentences rather than a field value."""
        if len(value) > self.config.prose_max_length:
            return True
        clauses = [part for part in _CLAUSE_BREAK.split(value) if part.strip()]
        if len(clauses) >= 2 and len(value) > self.config.prose_clause_min_length:
            return True
        return bool(_CONNECTIVES.search(value))

    @staticmethod
    def looks_like_label_dump(value: str) -> bool:
        """True when an exchange value swallowed neighbouring label/value pairs."""
        return len(value) > 40 or ":" in value or bool(_FOREIGN_LABELS.search(value))

    @staticmethod
    def is_exchange_candidate(value: object) -> bool:
        """True when a value reads as a listing venue such as ``NASDAQ`` or ``OTCQB``."""
        if not isinstance(value, str):
            return False
        cleaned = sanitize(value)
        return bool(_EXCHANGE_NAME.match(cleaned) or _EXCHANGE_CODE.match(cleaned))
