import math

import pytest

from nodes2py.config import SAMPLE_RECORD
from nodes2py.errors import MalformedListLiteral
from nodes2py.literals import (coerce_const_input, flatten_paths, get_nested, infer_dtype,
                               parse_list_literal, py_literal, py_quote, slugify)


def test_get_nested():
    row = {"a": {"b": 1}, "s": "text"}
    assert get_nested(row, "a.b") == 1
    assert get_nested(row, "a.c") is None
    assert get_nested(row, "a.b.c") is None
    assert get_nested(row, "s.x") is None
    assert get_nested(None, "a") is None


@pytest.mark.parametrize("dtype,value,expected", [
    ("number", 3, "3"),
    ("number", 2.5, "2.5"),
    ("boolean", True, "True"),
    ("boolean", "false", "False"),
    ("list", [1, "a", None], "[1, 'a', None]"),
    ("list", '[1, "a"]', "[1, 'a']"),
    ("list", "not json", "[]"),
    ("string", "it's", "'it\\'s'"),
    ("date", "2025-01-15", "'2025-01-15'"),
    ("any", {"k": [True]}, "{'k': [True]}"),
])
def test_py_literal(dtype, value, expected):
    assert py_literal(dtype, value) == expected


def test_py_quote_is_a_valid_literal():
    text = "back\\slash 'quote'\nline"
    assert eval(py_quote(text)) == text


def test_slugify():
    assert slugify("Total Price!") == "total_price"
    assert slugify("  --  ") == ""
    assert slugify(None) == ""


def test_parse_list_literal():
    assert parse_list_literal("[1, 2]") == [1, 2]
    assert parse_list_literal("{}") == []
    assert parse_list_literal("[1,") == []
    with pytest.raises(MalformedListLiteral):
        parse_list_literal("[1,", strict=True)


def test_coerce_const_input():
    assert coerce_const_input("number", "12") == 12
    assert coerce_const_input("number", "1.5") == 1.5
    assert coerce_const_input("number", "") == 0
    assert math.isnan(coerce_const_input("number", "abc"))
    assert coerce_const_input("boolean", "TRUE") is True
    assert coerce_const_input("boolean", "yes") is False
    assert coerce_const_input("list", "[1, 2]") == [1, 2]
    assert coerce_const_input("string", 5) == "5"


def test_infer_dtype_and_paths():
    assert infer_dtype("2025-01-15") == "date"
    assert infer_dtype(True) == "boolean"
    paths = dict(flatten_paths(SAMPLE_RECORD))
    assert paths["price"] == "number"
    assert paths["customer.name"] == "string"
    assert paths["created_at"] == "date"
    assert "customer" not in paths
