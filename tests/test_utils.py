"""Tests for category sanitizing and pagination helpers."""

import pytest

from finance_import.utils.categories import sanitize_category
from finance_import.utils.pagination import calculate_pagination, normalize_page


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("homeAndGarden", "HomeAndGarden"),
        ("Home    and Garden", "Home And Garden"),
        ("Home :Garden", "Home:Garden"),
        ("Home: ", "Home"),
        (":Home::Garden:", "Home:Garden"),
        ("  food : coffee  shops ", "Food:Coffee Shops"),
        ("  ", ""),
        ("", ""),
        (None, ""),
    ],
)
def test_sanitize_category(raw, expected):
    assert sanitize_category(raw) == expected


class TestNormalizePage:
    def test_defaults(self):
        assert normalize_page(None, None) == (1, 50)

    def test_out_of_range_values(self):
        assert normalize_page(0, 0) == (1, 50)
        assert normalize_page(-3, -1) == (1, 50)

    def test_caps_page_size(self):
        assert normalize_page(2, 5000) == (2, 1000)

    def test_custom_default(self):
        assert normalize_page(None, None, default_size=25, max_size=30) == (1, 25)
        assert normalize_page(None, 99, default_size=25, max_size=30) == (1, 30)


class TestCalculatePagination:
    def test_middle_page(self):
        metadata = calculate_pagination(2, 10, 35)

        assert metadata.total_pages == 4
        assert metadata.has_previous_page is True
        assert metadata.has_next_page is True
        assert (metadata.first_item, metadata.last_item) == (11, 20)

    def test_last_partial_page(self):
        metadata = calculate_pagination(4, 10, 35)

        assert metadata.has_next_page is False
        assert (metadata.first_item, metadata.last_item) == (31, 35)

    def test_empty(self):
        metadata = calculate_pagination(1, 50, 0)

        assert metadata.total_pages == 0
        assert metadata.has_previous_page is False
        assert metadata.has_next_page is False
        assert (metadata.first_item, metadata.last_item) == (0, 0)
