"""
Filter normalizer - turn loose service filters into a FilterDescriptor.

Service callers send filters shaped like::

    {
        "query": {"age": 7, "id": "K1"},
        "sort": "-created name",          # or ["-created", "name"]
                                          # or {"created": -1, "name": 1}
        "search": "abc",
        "searchFields": ["name", "tag"],  # or "name tag"
        "limit": 10,
        "offset": 20,
    }

normalize() validates and rewrites that into an immutable FilterDescriptor
that the SQL builder consumes. Invalid paging values are dropped rather
than rejected; unknown sort shapes raise ValueError.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

ASC = "ASC"
DESC = "DESC"

ID_FIELD = "id"


@dataclass(frozen=True)
class SortKey:
    """A single ORDER BY term."""
    column: str
    direction: str = ASC


@dataclass(frozen=True)
class FilterDescriptor:
    """Normalized filter, ready for the SQL builder.

    Attributes:
        where: Column -> equality value (lists mean membership)
        sort: ORDER BY terms, in the order they were given
        search: Full-text term, None when search is off
        search_fields: Columns matched with LIKE against the search term
        limit: Positive row limit, or None
        offset: Positive row offset, or None
        count_only: True when building a COUNT query
    """
    where: dict[str, Any] = field(default_factory=dict)
    sort: tuple[SortKey, ...] = ()
    search: str | None = None
    search_fields: tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None
    count_only: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.where or self.sort or self.search or self.limit or self.offset
        )


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _positive_int(value: Any) -> int | None:
    if not _is_number(value) or int(value) <= 0:
        return None
    return int(value)


def normalize_where(
    where: Mapping[str, Any] | None,
    primary_key: str,
    denylist: Iterable[str] = (),
) -> dict[str, Any]:
    """Apply the id -> primary key rename and strip denylisted columns.

    The primary key takes the position of ``id`` and, when both are
    present, the value of ``id``. Returns a new dict; the input mapping is
    not modified.
    """
    source = dict(where or {})
    result: dict[str, Any] = {}
    for key, value in source.items():
        result[primary_key if key == ID_FIELD else key] = value
    if ID_FIELD in source:
        result[primary_key] = source[ID_FIELD]
    for key in denylist:
        result.pop(key, None)
    return result


def _split_tokens(value: str) -> list[str]:
    return [t for t in re.split(r"[\s,]+", value.strip()) if t]


def _direction(column: str, value: Any) -> str:
    if _is_number(value):
        return ASC if value > 0 else DESC
    if isinstance(value, str) and value.upper() in (ASC, DESC):
        return value.upper()
    raise ValueError(f"Invalid sort direction for '{column}': {value!r}")


def normalize_sort(sort: Any) -> tuple[SortKey, ...]:
    """Normalize the three accepted sort shapes into SortKey terms.

    - "name -age" or "name,-age": tokens, "-" prefix means descending
    - ["name", "-age"]: the same tokens as a sequence
    - {"name": 1, "age": -1}: positive is ascending, zero/negative descending

    A column repeated later keeps its first position and takes the last
    direction, so every shape yields the same result for the same order.
    """
    if sort is None or sort == "":
        return ()

    if isinstance(sort, str):
        sort = _split_tokens(sort)

    ordered: dict[str, str] = {}
    if isinstance(sort, Mapping):
        for column, value in sort.items():
            ordered[column] = _direction(column, value)
    elif isinstance(sort, (list, tuple)):
        for item in sort:
            if not isinstance(item, str):
                raise ValueError(f"Sort tokens must be strings, got {item!r}")
            for token in _split_tokens(item):
                if token.startswith("-"):
                    ordered[token[1:]] = DESC
                else:
                    ordered[token] = ASC
    else:
        raise ValueError(f"Unsupported sort value: {sort!r}")

    return tuple(SortKey(column, direction) for column, direction in ordered.items() if column)


def _search_fields(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(t for t in value.split(" ") if t)
    return tuple(value)


def normalize(
    raw_filter: Mapping[str, Any] | None,
    primary_key: str,
    denylist: Iterable[str] = (),
    *,
    count_only: bool = False,
) -> FilterDescriptor:
    """Build a FilterDescriptor from raw service filters.

    Args:
        raw_filter: Dict with optional query, sort, search, searchFields,
            limit and offset keys
        primary_key: Column the generic ``id`` key is renamed to
        denylist: Columns never allowed in the where clause or search fields
        count_only: Mark the descriptor for a COUNT query

    Returns:
        FilterDescriptor

    Raises:
        ValueError: If sort has an unsupported shape
    """
    raw = dict(raw_filter or {})
    denylist = set(denylist)

    search = raw.get("search")
    if not isinstance(search, str) or search == "":
        search = None

    search_fields: tuple[str, ...] = ()
    if search:
        search_fields = tuple(
            f for f in _search_fields(raw.get("searchFields")) if f not in denylist
        )

    return FilterDescriptor(
        where=normalize_where(raw.get("query"), primary_key, denylist),
        sort=normalize_sort(raw.get("sort")),
        search=search,
        search_fields=search_fields,
        limit=_positive_int(raw.get("limit")),
        offset=_positive_int(raw.get("offset")),
        count_only=count_only,
    )
