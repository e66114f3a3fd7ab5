import pytest
from llama_index.core.vector_stores.types import (
    FilterCondition,
    FilterOperator,
    MetadataFilter,
    MetadataFilters,
)

from rerank_qa.errors import FilterExpressionError, RetrievalError
from rerank_qa.retrieval.filters import parse_filter_expression


@pytest.mark.parametrize("expression", [None, "", "   "])
def test_blank_expression_means_no_filter(expression):
    assert parse_filter_expression(expression) is None


def test_single_comparison_is_wrapped():
    filters = parse_filter_expression("source == 'docs'")

    assert isinstance(filters, MetadataFilters)
    assert len(filters.filters) == 1
    only = filters.filters[0]
    assert only.key == "source"
    assert only.value == "docs"
    assert only.operator == FilterOperator.EQ


@pytest.mark.parametrize(
    "op, expected",
    [
        ("==", FilterOperator.EQ),
        ("!=", FilterOperator.NE),
        (">", FilterOperator.GT),
        (">=", FilterOperator.GTE),
        ("<", FilterOperator.LT),
        ("<=", FilterOperator.LTE),
    ],
)
def test_comparison_operators(op, expected):
    filters = parse_filter_expression(f"year {op} 2023")

    assert filters.filters[0].operator == expected
    assert filters.filters[0].value == 2023


def test_and_expression():
    filters = parse_filter_expression("source == \"docs\" AND year >= 2023")

    assert filters.condition == FilterCondition.AND
    assert [f.key for f in filters.filters] == ["source", "year"]


def test_symbolic_or_expression():
    filters = parse_filter_expression("a == 1 || b == 2")

    assert filters.condition == FilterCondition.OR
    assert [f.value for f in filters.filters] == [1, 2]


def test_and_binds_tighter_than_or():
    filters = parse_filter_expression("a == 1 or b == 2 and c == 3")

    assert filters.condition == FilterCondition.OR
    first, second = filters.filters
    assert isinstance(first, MetadataFilter)
    assert isinstance(second, MetadataFilters)
    assert second.condition == FilterCondition.AND
    assert [f.key for f in second.filters] == ["b", "c"]


def test_parentheses_group():
    filters = parse_filter_expression("(a == 1 OR b == 2) AND c == 'x'")

    assert filters.condition == FilterCondition.AND
    group, last = filters.filters
    assert isinstance(group, MetadataFilters)
    assert group.condition == FilterCondition.OR
    assert last.value == "x"


def test_in_and_not_in_lists():
    filters = parse_filter_expression("genre in ['drama', 'comedy'] && lang NOT IN ['fr']")

    included, excluded = filters.filters
    assert included.operator == FilterOperator.IN
    assert included.value == ["drama", "comedy"]
    assert excluded.operator == FilterOperator.NIN
    assert excluded.value == ["fr"]


def test_value_types():
    filters = parse_filter_expression("a == 1.5 AND c == 'it\\'s' AND d == -2")

    assert [f.value for f in filters.filters] == [1.5, "it's", -2]


@pytest.mark.parametrize(
    "literal, expected",
    [
        ("'x\\ny'", "x\ny"),
        ("'a\\tb\\rc'", "a\tb\rc"),
        ("'C:\\\\temp'", "C:\\temp"),
        ('"say \\"hi\\""', 'say "hi"'),
        ("'\\q'", "q"),
    ],
)
def test_string_escapes(literal, expected):
    filters = parse_filter_expression(f"a == {literal}")

    assert filters.filters[0].value == expected


def test_dotted_keys_are_allowed():
    filters = parse_filter_expression("meta.author == 'ada'")

    assert filters.filters[0].key == "meta.author"


@pytest.mark.parametrize(
    "expression",
    [
        "source ==",
        "== 'docs'",
        "source 'docs'",
        "(a == 1",
        "a == 1 AND",
        "a in 'x'",
        "a == 1 b == 2",
        "a == $",
    ],
)
def test_invalid_expressions_raise(expression):
    with pytest.raises(FilterExpressionError) as exc_info:
        parse_filter_expression(expression)

    assert exc_info.value.expression == expression
    assert exc_info.value.position is not None
    assert isinstance(exc_info.value, RetrievalError)
