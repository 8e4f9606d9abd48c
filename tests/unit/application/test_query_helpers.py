"""Tests for the list query helpers."""

import pytest
from pydantic import ValidationError

from keelson.application.services.content_service import (
    UNCATEGORIZED_GROUP,
    QueryOptions,
    RelatedFilter,
    _Where,
    build_url,
    group_items,
)
from keelson.domain.services.ports import QueryPredicate


@pytest.mark.parametrize(
    ("base_path", "slugs", "expected"),
    [
        ("/blog", ["guides", "install"], "/blog/guides/install"),
        ("blog/", ["hello"], "/blog/hello"),
        (None, ["about"], "/about"),
        ("/", ["about"], "/about"),
        ("/blog", [], "/blog"),
        ("/blog", ["", "x"], "/blog/x"),
    ],
)
def test_build_url(base_path, slugs, expected):
    """Test URL building from a base path and slugs."""
    assert build_url(base_path, slugs) == expected


def test_group_items_by_scalar():
    """Test grouping by a scalar value."""
    items = [{"id": 1, "kind": "a"}, {"id": 2, "kind": "b"}, {"id": 3, "kind": "a"}, {"id": 4, "kind": ""}]

    groups = group_items(items, "kind")

    assert [item["id"] for item in groups["a"]] == [1, 3]
    assert [item["id"] for item in groups["b"]] == [2]
    assert [item["id"] for item in groups[UNCATEGORIZED_GROUP]] == [4]


def test_group_items_by_list_and_objects():
    """Test grouping by list values and object slugs."""
    items = [
        {"id": 1, "keywords": [{"name": "python"}, {"name": "sql"}]},
        {"id": 2, "keywords": [{"name": "python"}]},
        {"id": 3, "keywords": []},
        {"id": 4, "writer": {"slug": "ann"}},
    ]

    groups = group_items(items, "keywords")

    assert [item["id"] for item in groups["python"]] == [1, 2]
    assert [item["id"] for item in groups["sql"]] == [1]
    assert [item["id"] for item in groups[UNCATEGORIZED_GROUP]] == [3, 4]
    assert list(group_items(items[3:], "writer")) == ["ann"]


def test_query_options_defaults():
    """Test the default query options."""
    options = QueryOptions()

    assert options.status == "published"
    assert options.order_by == "created_at"
    assert options.order == "desc"
    assert options.exclude_current is True
    assert options.include_blocks is True


def test_query_options_accepts_camel_case_aliases():
    """Test that query options accept camelCase keys."""
    options = QueryOptions.model_validate(
        {
            "currentPage": 2,
            "orderBy": "title",
            "groupBy": "keywords",
            "siblingOf": "p1",
            "excludeCurrent": False,
            "whereRelated": {"field": "categories", "value": "news"},
        }
    )

    assert options.current_page == 2
    assert options.order_by == "title"
    assert options.group_by == "keywords"
    assert options.sibling_of == "p1"
    assert options.exclude_current is False
    assert options.where_related.field == "categories"


def test_query_options_accepts_field_names():
    """Test that query options accept snake_case names."""
    assert QueryOptions(current_page=3, parent_id="p1").parent_id == "p1"


def test_query_options_rejects_bad_values():
    """Test that invalid order and limit values are rejected."""
    with pytest.raises(ValidationError):
        QueryOptions(order="sideways")
    with pytest.raises(ValidationError):
        QueryOptions(limit=0)


def test_related_filter_target_values():
    """Test the values a related filter matches on."""
    assert RelatedFilter(field="writer", value="a1").target_values() == ["a1"]
    assert RelatedFilter(field="categories", values=["news", None, "", 3]).target_values() == ["news", "3"]
    assert RelatedFilter(field="writer").target_values() == []


def test_predicate_parameters_are_rebound():
    """External predicate names are renamed so they cannot overwrite generated ones."""
    where = _Where()
    where.add(f'"status" = {where.param("published")}')

    predicate = QueryPredicate('"title" = :p0 AND "created_at"::date > :p1', {"p0": "Install", "p1": "2024-01-01"})

    where.add_predicate(predicate)

    assert where.params == {"__kq_p0": "published", "__kq_p1": "Install", "__kq_p2": "2024-01-01"}
    assert where.sql == '("status" = :__kq_p0) AND ("title" = :__kq_p1 AND "created_at"::date > :__kq_p2)'
