"""Test page/limit normalization and metadata."""

from moltin.core.pagination import (
    DEFAULT_LIMIT, MAX_LIMIT, normalize_pagination_params, paginated, pagination_metadata
)


def test_defaults():
    assert normalize_pagination_params() == (1, DEFAULT_LIMIT, 0)


def test_string_values_are_parsed():
    assert normalize_pagination_params("3", "15") == (3, 15, 30)


def test_invalid_values_fall_back():
    assert normalize_pagination_params("abc", "xyz") == (1, DEFAULT_LIMIT, 0)
    assert normalize_pagination_params("0", "20") == (1, 20, 0)
    assert normalize_pagination_params(-4, None) == (1, DEFAULT_LIMIT, 0)


def test_limit_is_clamped():
    assert normalize_pagination_params(1, 500)[1] == MAX_LIMIT
    assert normalize_pagination_params(1, 0)[1] == 1
    assert normalize_pagination_params(1, "-3")[1] == 1


def test_metadata():
    assert pagination_metadata(45, 2, 20) == {
        "page": 2, "limit": 20, "total": 45, "total_pages": 3, "has_more": True,
    }
    assert pagination_metadata(40, 2, 20)["has_more"] is False
    assert pagination_metadata(0, 1, 20)["total_pages"] == 0


def test_paginated_shape():
    body = paginated([{"id": 1}], 1, 1, 20)
    assert body["data"] == [{"id": 1}]
    assert body["pagination"]["total"] == 1
