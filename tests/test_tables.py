"""Tests for table extraction and its column rules."""

import pytest

from config.settings import GlobalConfig
from src.document import element, parse_html, find_all
from src.tables import TableExtractor, layout_of, normalize_table_key


def _table(*rows: tuple[str, ...], header_tag: str = "th", **attrs: str):
    header, *body = rows
    return element(
        "table",
        element("tr", *[element(header_tag, cell) for cell in header]),
        *[element("tr", *[element("td", cell) for cell in row]) for row in body],
        **attrs,
    )


@pytest.fixture
def extractor(mock_config: GlobalConfig) -> TableExtractor:
    return TableExtractor(mock_config, display_names={"table-short-borrow-rate": "Cost To Borrow (IBKR):"})


class TestColumnRules:
    def test_notes_column_dropped_date_kept(self, extractor: TableExtractor) -> None:
        table = _table(
            ("date", "notes"),
            ("2024-01-15", "This figure represents the borrow fee charged overnight."),
        )
        element("body", table)

        result = extractor.extract(table)

        assert result is not None
        assert result.rows == [{"date": "2024-01-15"}]
        assert result.headers == ["date"]

    def test_non_value_cells_dropped(self, extractor: TableExtractor) -> None:
        table = _table(
            ("Period", "Shares", "Comment"),
            ("Q1", "1.2M", "ok"),
            ("Q2", "pending review by the desk", "n/a"),
        )
        element("body", table)

        result = extractor.extract(table)

        assert result is not None
        assert result.rows == [{"Period": "Q1", "Shares": "1.2M"}, {"Period": "Q2"}]
        assert result.headers == ["Period", "Shares"]

    def test_missing_header_uses_positional_name(self, extractor: TableExtractor) -> None:
        table = _table(("Date", ""), ("2024-01-10", "45.2%"))
        element("body", table)

        result = extractor.extract(table)

        assert result is not None
        assert result.rows == [{"Date": "2024-01-10", "col_1": "45.2%"}]

    def test_table_without_useful_rows_is_dropped(self, extractor: TableExtractor) -> None:
        table = _table(("Notes", "Description"), ("see below", "long text about nothing"))
        element("body", table)

        assert extractor.extract(table) is None


class TestIdentity:
    def test_id_attribute_wins_and_gets_display_name(self, extractor: TableExtractor) -> None:
        table = _table(("Date", "Rate"), ("2024-01-12", "45.2%"), id="Table-Short-Borrow-Rate")
        element("body", element("h2", "Borrow"), table)

        result = extractor.extract(table)

        assert result is not None
        assert result.key == "table-short-borrow-rate"
        assert result.display_name == "Cost To Borrow (IBKR):"

    def test_heading_used_when_no_id(self, extractor: TableExtractor) -> None:
        table = _table(("Date", "Volume"), ("2024-01-12", "523.4M"))
        element("body", element("h3", "Short Sale Volume"), table)

        result = extractor.extract(table)

        assert result is not None
        assert result.key == "short-sale-volume"
        assert result.display_name == "Short Sale Volume"

    def test_fallback_identity(self, extractor: TableExtractor) -> None:
        table = _table(("Date", "Volume"), ("2024-01-12", "523.4M"))
        element("body", table)

        result = extractor.extract(table)

        assert result is not None
        assert (result.key, result.display_name) == ("table", "Table")

    def test_normalize_table_key(self) -> None:
        assert normalize_table_key("  Fails To Deliver (FTD) ") == "fails-to-deliver-ftd"


class TestLayout:
    def test_thead_row_is_header(self) -> None:
        root = parse_html(
            "<table><thead><tr><td>Date</td><td>Qty</td></tr></thead>"
            "<tbody><tr><td>2024-01-05</td><td>15,300</td></tr></tbody></table>"
        )
        layout = layout_of(find_all(root, "table")[0])

        assert layout.header_index == 0
        assert layout.explicit_header is True

    def test_first_row_is_header_when_unmarked(self) -> None:
        table = _table(("Float", "1.5M"), ("Shares Outstanding", "3M"), header_tag="td")

        layout = layout_of(table)

        assert layout.header_index == 0
        assert layout.explicit_header is False

    def test_nested_table_rows_excluded(self) -> None:
        inner = _table(("a", "b"), ("1", "2"))
        outer = element(
            "table",
            element("tr", element("th", "Date"), element("th", "Value")),
            element("tr", element("td", "2024-01-01"), element("td", inner)),
        )

        assert len(layout_of(outer).rows) == 2
