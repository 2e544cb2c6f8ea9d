"""Label canonicalization.

Maps the free-text labels found on source pages onto the fixed field
vocabulary. The mapping is a pure function of the label text: the same label
always yields the same key no matter where it was found.
"""

import re
import unicodedata

from src.logger import get_logger
from src.models import CanonicalKey, FieldKey, OtherKey, parse_field_key

log = get_logger(__name__)

K = CanonicalKey

SYNONYMS: dict[str, CanonicalKey] = {
    # Share structure
    "float": K.FLOAT,
    "free float": K.FLOAT,
    "public float": K.FLOAT,
    "latest float": K.FLOAT,
    "float shares": K.FLOAT,
    "shares outstanding": K.SHARES_OUTSTANDING,
    "outstanding shares": K.SHARES_OUTSTANDING,
    "shares out": K.SHARES_OUTSTANDING,
    "shares o/s": K.SHARES_OUTSTANDING,
    "os": K.SHARES_OUTSTANDING,
    # Balance sheet / valuation
    "estimated cash": K.ESTIMATED_CASH,
    "est. cash": K.ESTIMATED_CASH,
    "est cash": K.ESTIMATED_CASH,
    "estimated current cash": K.ESTIMATED_CASH,
    "cash position": K.ESTIMATED_CASH,
    "market cap": K.MARKET_CAP,
    "mkt cap": K.MARKET_CAP,
    "market capitalization": K.MARKET_CAP,
    "enterprise value": K.ENTERPRISE_VALUE,
    "ev": K.ENTERPRISE_VALUE,
    "institutional ownership": K.INSTITUTIONAL_OWNERSHIP,
    "institutional own": K.INSTITUTIONAL_OWNERSHIP,
    "inst own": K.INSTITUTIONAL_OWNERSHIP,
    "inst. own": K.INSTITUTIONAL_OWNERSHIP,
    "inst ownership": K.INSTITUTIONAL_OWNERSHIP,
    # Company profile
    "sector": K.SECTOR,
    "industry": K.INDUSTRY,
    "country": K.COUNTRY,
    "country of incorporation": K.COUNTRY,
    "exchange": K.EXCHANGE,
    "listing exchange": K.EXCHANGE,
    "description": K.DESCRIPTION,
    "company description": K.DESCRIPTION,
    # Short metrics
    "short interest": K.SHORT_INTEREST,
    "short interest shares": K.SHORT_INTEREST,
    "shares short": K.SHORT_INTEREST,
    "short interest ratio": K.SHORT_INTEREST_RATIO,
    "short ratio": K.SHORT_INTEREST_RATIO,
    "days to cover": K.SHORT_INTEREST_RATIO,
    "short interest % float": K.SHORT_INTEREST_PERCENT_FLOAT,
    "short interest % of float": K.SHORT_INTEREST_PERCENT_FLOAT,
    "short % float": K.SHORT_INTEREST_PERCENT_FLOAT,
    "short % of float": K.SHORT_INTEREST_PERCENT_FLOAT,
    "short float %": K.SHORT_INTEREST_PERCENT_FLOAT,
    "short float": K.SHORT_INTEREST_PERCENT_FLOAT,
    "cost to borrow": K.COST_TO_BORROW,
    "borrow rate": K.COST_TO_BORROW,
    "borrow fee": K.COST_TO_BORROW,
    "borrow fee rate": K.COST_TO_BORROW,
    "ctb": K.COST_TO_BORROW,
    "short shares available": K.SHORT_SHARES_AVAILABLE,
    "short shares availability": K.SHORT_SHARES_AVAILABLE,
    "shares available": K.SHORT_SHARES_AVAILABLE,
    "available shares": K.SHORT_SHARES_AVAILABLE,
    "finra exempt volume": K.FINRA_EXEMPT_VOLUME,
    "exempt volume": K.FINRA_EXEMPT_VOLUME,
    "short exempt volume": K.FINRA_EXEMPT_VOLUME,
    "short-exempt volume": K.FINRA_EXEMPT_VOLUME,
    "regulation sho exempt": K.FINRA_EXEMPT_VOLUME,
    "failure to deliver": K.FAILURE_TO_DELIVER,
    "failures to deliver": K.FAILURE_TO_DELIVER,
    "fails to deliver": K.FAILURE_TO_DELIVER,
    "ftd": K.FAILURE_TO_DELIVER,
    "ftds": K.FAILURE_TO_DELIVER,
    # Freshness
    "last update": K.LAST_DATA_UPDATE,
    "last updated": K.LAST_DATA_UPDATE,
    "data as of": K.LAST_DATA_UPDATE,
    "as of": K.LAST_DATA_UPDATE,
}

# Labels whose value holds two fields separated by "/".
COMPOUND_LABELS: dict[str, tuple[str, str]] = {
    "float & os": ("Float", "Shares Outstanding"),
    "float & shares outstanding": ("Float", "Shares Outstanding"),
    "mkt cap & ev": ("Mkt Cap", "Enterprise Value"),
    "market cap & ev": ("Market Cap", "Enterprise Value"),
    "market cap & enterprise value": ("Market Cap", "Enterprise Value"),
}

# Compared after stripping everything but [a-z0-9].
BLACKLIST: frozenset[str] = frozenset(
    {
        "finrashortvolume",
        "finrashortvolumeratio",
        "finratotalvolume",
        "source",
        "check",
        "ki",
        "mutwor",
        "rlhdt",
        "type",
        "title",
    }
)

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WORDS = re.compile(r"[A-Za-z0-9]+")


def normalize_label(label: str) -> str:
    """Case- and whitespace-normalized lookup form of a label."""
    text = unicodedata.normalize("NFKC", label).lower()
    text = _WHITESPACE.sub(" ", text).strip()
    return text.rstrip(":").strip()


def alnum_form(name: str) -> str:
    return _NON_ALNUM.sub("", name.lower())


def is_blacklisted(name: str) -> bool:
    """True for noise field names, whatever their case or punctuation."""
    return alnum_form(name) in BLACKLIST


def camel_case(label: str) -> str:
    """Generic camel-cased key for an unmapped label.

    Example:
        >>> camel_case("Avg. Volume (10d)")
        'avgVolume10d'
    """
    words = _WORDS.findall(unicodedata.normalize("NFKC", label))
    if not words:
        return ""
    head, *tail = words
    return head.lower() + "".join(word[:1].upper() + word[1:].lower() for word in tail)


class LabelCanonicalizer:
    """Maps label text to a FieldKey, or None when the label is noise.

    Example:
        >>> LabelCanonicalizer().canonicalize("Mkt Cap")
        <CanonicalKey.MARKET_CAP: 'marketCap'>
    """

    def __init__(self, synonyms: dict[str, CanonicalKey] | None = None) -> None:
        self._synonyms = {
            normalize_label(label): key for label, key in (synonyms or SYNONYMS).items()
        }
        known = set(self._synonyms) | set(COMPOUND_LABELS)
        self._known_labels = tuple(sorted(known, key=lambda label: (-len(label), label)))

    def canonicalize(self, label: str) -> FieldKey | None:
        normalized = normalize_label(label)
        if not normalized or is_blacklisted(normalized):
            return None

        mapped = self._synonyms.get(normalized)
        if mapped is not None:
            return mapped

        fallback = camel_case(normalized)
        if not fallback or is_blacklisted(fallback):
            return None
        key = parse_field_key(fallback)
        if isinstance(key, OtherKey):
            log.trace("Unmapped label kept as other field", label=label, key=fallback)
        return key

    def known_labels(self) -> tuple[str, ...]:
        """Normalized synonyms and compound labels, longest first."""
        return self._known_labels

    @staticmethod
    def split_compound(label: str) -> tuple[str, str] | None:
        """Component labels of a known compound label, else None."""
        return COMPOUND_LABELS.get(normalize_label(label))
