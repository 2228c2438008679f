from __future__ import annotations
import json
import logging
import math
import re
from typing import Any, List, Tuple

from .errors import MalformedListLiteral

log = logging.getLogger(__name__)

_slug_re = re.compile(r"[^a-z0-9]+")
_date_re = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def get_nested(record: Any, path: str) -> Any:
    """Follow a dot-separated path through nested dicts; None when the path breaks."""
    cur = record
    for key in str(path).split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def py_quote(s: Any) -> str:
    text = str(s)
    text = text.replace("\\", "\\\\").replace("'", "\\'")
    text = text.replace("\n", "\\n").replace("\r", "\\r")
    return f"'{text}'"


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _py_number(v: Any) -> str:
    if isinstance(v, float):
        if math.isnan(v):
            return "float('nan')"
        if math.isinf(v):
            return "float('inf')" if v > 0 else "float('-inf')"
    return repr(v)


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() == "true"
    return bool(v)


def py_value(v: Any) -> str:
    """Render a JSON-like value as Python source, by its own type."""
    if v is None:
        return "None"
    if isinstance(v, bool):
        return "True" if v else "False"
    if _is_number(v):
        return _py_number(v)
    if isinstance(v, (list, tuple)):
        return "[" + ", ".join(py_value(x) for x in v) + "]"
    if isinstance(v, dict):
        return "{" + ", ".join(f"{py_value(k)}: {py_value(x)}" for k, x in v.items()) + "}"
    return py_quote(v)


def py_literal(dtype: str, value: Any) -> str:
    """Render a const node's value as a Python literal for its declared dtype."""
    if value is None:
        return "None"
    if dtype == "number" and _is_number(value):
        return _py_number(value)
    if dtype == "boolean":
        return "True" if _as_bool(value) else "False"
    if dtype == "list":
        if isinstance(value, str):
            value = parse_list_literal(value)
        if not isinstance(value, (list, tuple)):
            value = []
        return py_value(list(value))
    if dtype == "any":
        return py_value(value)
    return py_quote(value)


def slugify(label: Any) -> str:
    return _slug_re.sub("_", str(label or "").lower()).strip("_")


def parse_list_literal(text: str, strict: bool = False) -> List[Any]:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as e:
        if strict:
            raise MalformedListLiteral(f"Not a JSON list: {text!r}") from e
        log.debug("Malformed list literal %r, using []", text)
        return []
    if not isinstance(parsed, list):
        if strict:
            raise MalformedListLiteral(f"Not a JSON list: {text!r}")
        return []
    return parsed


def coerce_const_input(dtype: str, raw: Any) -> Any:
    """Turn raw editor input into the value stored on a const node."""
    if dtype == "number":
        if _is_number(raw):
            return raw
        text = str(raw if raw is not None else "").strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return float("nan")
    if dtype == "boolean":
        return _as_bool(raw)
    if dtype == "list":
        if isinstance(raw, list):
            return raw
        return parse_list_literal(str(raw if raw is not None else ""))
    if dtype in ("string", "date"):
        return "" if raw is None else str(raw)
    return raw


def infer_dtype(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "date" if _date_re.match(value) else "string"
    if isinstance(value, list):
        return "list"
    return "any"


def flatten_paths(record: Any, base: str = "") -> List[Tuple[str, str]]:
    """List every leaf path of a sample record with its inferred dtype."""
    out: List[Tuple[str, str]] = []
    if not isinstance(record, dict):
        return out
    for k, v in record.items():
        p = f"{base}.{k}" if base else str(k)
        if isinstance(v, dict) and v:
            out.extend(flatten_paths(v, p))
        else:
            out.append((p, infer_dtype(v)))
    return out
