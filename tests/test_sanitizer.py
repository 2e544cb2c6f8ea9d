"""Tests for value sanitization and keep/discard classification."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from config.settings import GlobalConfig
from src.models import CanonicalKey, OtherKey
from src.sanitizer import ValueClassifier, sanitize


@pytest.fixture
def classifier(mock_config: GlobalConfig) -> ValueClassifier:
    return ValueClassifier(mock_config)


class TestSanitize:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("\u00a012.5M\u200b  shares ", "12.5M shares"),
            ("  1,234\n\t567  ", "1,234 567"),
            ("| NASDAQ •", "NASDAQ"),
            ("soft\u00adhyphen", "softhyphen"),
            ("\ufeffTechnology;", "Technology"),
            (None, ""),
        ],
    )
    def test_sanitize(self, raw: str | None, expected: str) -> None:
        assert sanitize(raw) == expected

    @given(st.text())
    def test_sanitize_is_idempotent(self, raw: str) -> None:
        once = sanitize(raw)
        assert sanitize(once) == once


class TestClassify:
    def test_numeric_field_requires_value_like(self, classifier: ValueClassifier) -> None:
        assert classifier.classify("1.96M", CanonicalKey.FLOAT) == "1.96M"
        assert classifier.classify("12,000 shares", CanonicalKey.SHORT_INTEREST) == "12,000 shares"
        assert classifier.classify("N/A", CanonicalKey.SHORT_INTEREST) == "N/A"
        assert (
            classifier.classify("Short interest is reported twice monthly", CanonicalKey.SHORT_INTEREST)
            is None
        )

    def test_free_text_field_keeps_short_text(self, classifier: ValueClassifier) -> None:
        assert classifier.classify("Health Care Equipment & Services", CanonicalKey.INDUSTRY) == (
            "Health Care Equipment & Services"
        )
        assert classifier.classify("$20.4M", CanonicalKey.MARKET_CAP) == "$20.4M"

    @pytest.mark.parametrize(
        "prose",
        [
            "This figure represents the total value of shares, which is calculated daily.",
            "The company operates in several markets. It was founded in 1999 and has grown since "
            "then. Its headquarters are in Texas.",
            "x" * 141,
        ],
    )
    def test_free_text_field_rejects_prose(self, classifier: ValueClassifier, prose: str) -> None:
        assert classifier.classify(prose, CanonicalKey.SECTOR) is None
        assert classifier.classify(prose, CanonicalKey.DESCRIPTION) is None

    @pytest.mark.parametrize(
        "value",
        ["NASDAQ Mkt Cap: 20.4M", "NYSE Float 1.5M", "N" * 41],
    )
    def test_exchange_rejects_label_dump(self, classifier: ValueClassifier, value: str) -> None:
        assert classifier.classify(value, CanonicalKey.EXCHANGE) is None

    def test_exchange_keeps_plain_code(self, classifier: ValueClassifier) -> None:
        assert classifier.classify("NASDAQ", CanonicalKey.EXCHANGE) == "NASDAQ"

    def test_other_keys_follow_value_rule(self, classifier: ValueClassifier) -> None:
        assert classifier.classify("3.2M", OtherKey("avgVolume")) == "3.2M"
        assert classifier.classify("see the methodology page for more", OtherKey("note")) is None

    def test_blacklisted_or_missing_key_rejected(self, classifier: ValueClassifier) -> None:
        assert classifier.classify("FINRA", OtherKey("source")) is None
        assert classifier.classify("1.2M", None) is None
        assert classifier.classify("   ", CanonicalKey.FLOAT) is None


class TestValueLike:
    @pytest.mark.parametrize("value", ["42", "$1B", "12%", "2 days", "Yes", "NASDAQ"])
    def test_value_like(self, classifier: ValueClassifier, value: str) -> None:
        assert classifier.is_value_like(value)

    @pytest.mark.parametrize(
        "value", ["not available at this time", "Supercalifragilisticexpialidocious"]
    )
    def test_not_value_like(self, classifier: ValueClassifier, value: str) -> None:
        assert not classifier.is_value_like(value)
