"""
Filter-to-predicate layer.

Repositories describe a query as a QuerySpec: typed conditions that refer to
values only through named parameters (``@region``, ``@minDistance``), plus an
ordering. A backend either compiles the QuerySpec (``to_mongo_filter``) or
evaluates it in Python (``matches``). Field paths come from code constants,
values from ``QuerySpec.parameters``; values are never spliced into text.

Pagination is keyset based: every ordering ends with ``id`` as tiebreaker and
a continuation token records the sort values of the last row returned. A
token is bound to the query text and its non-volatile parameter values.
"""

import base64
import binascii
import hashlib
import json
import operator
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from hikeplanner.core.exceptions import BadRequestError

ASC = "asc"
DESC = "desc"

_MISSING = object()


def get_path(document: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path; missing segments resolve to None."""
    current: Any = document
    for segment in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(segment, _MISSING)
        if current is _MISSING:
            return None
    return current


class Condition:
    """A single predicate over one document."""

    def render(self) -> str:
        raise NotImplementedError

    def to_mongo(self, params: Mapping[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def matches(self, document: Mapping[str, Any], params: Mapping[str, Any]) -> bool:
        raise NotImplementedError


# op -> (rendered symbol, mongo operator, python comparison)
_COMPARISONS = {
    "eq": ("=", "$eq", operator.eq),
    "ne": ("!=", "$ne", operator.ne),
    "gt": (">", "$gt", operator.gt),
    "gte": (">=", "$gte", operator.ge),
    "lt": ("<", "$lt", operator.lt),
    "lte": ("<=", "$lte", operator.le),
}


@dataclass(frozen=True)
class Comparison(Condition):
    path: str
    op: str
    param: str

    def __post_init__(self):
        if self.op not in _COMPARISONS:
            raise ValueError(f"Unsupported comparison operator: {self.op}")

    def render(self) -> str:
        return f"c.{self.path} {_COMPARISONS[self.op][0]} {self.param}"

    def to_mongo(self, params):
        value = params[self.param]
        if self.op == "eq":
            return {self.path: value}
        return {self.path: {_COMPARISONS[self.op][1]: value}}

    def matches(self, document, params):
        actual = get_path(document, self.path)
        expected = params[self.param]
        if self.op in ("eq", "ne"):
            return _COMPARISONS[self.op][2](actual, expected)
        if actual is None or expected is None:
            return False
        try:
            return _COMPARISONS[self.op][2](actual, expected)
        except TypeError:
            return False


@dataclass(frozen=True)
class In(Condition):
    path: str
    params: tuple[str, ...]

    def render(self) -> str:
        return f"c.{self.path} IN ({', '.join(self.params)})"

    def to_mongo(self, params):
        return {self.path: {"$in": [params[name] for name in self.params]}}

    def matches(self, document, params):
        return get_path(document, self.path) in [params[name] for name in self.params]


@dataclass(frozen=True)
class ArrayContains(Condition):
    path: str
    param: str

    def render(self) -> str:
        return f"ARRAY_CONTAINS(c.{self.path}, {self.param})"

    def to_mongo(self, params):
        return {self.path: {"$elemMatch": {"$eq": params[self.param]}}}

    def matches(self, document, params):
        values = get_path(document, self.path)
        return isinstance(values, list) and params[self.param] in values


@dataclass(frozen=True)
class ArrayIntersects(Condition):
    path: str
    params: tuple[str, ...]

    def render(self) -> str:
        return f"ARRAY_INTERSECTS(c.{self.path}, ({', '.join(self.params)}))"

    def to_mongo(self, params):
        return {self.path: {"$in": [params[name] for name in self.params]}}

    def matches(self, document, params):
        values = get_path(document, self.path)
        if not isinstance(values, list):
            return False
        wanted = [params[name] for name in self.params]
        return any(value in wanted for value in values)


@dataclass(frozen=True)
class TextMatch(Condition):
    """Case-insensitive substring match across several string fields."""

    paths: tuple[str, ...]
    param: str

    def render(self) -> str:
        parts = [f"CONTAINS(LOWER(c.{path}), LOWER({self.param}))" for path in self.paths]
        return "(" + " OR ".join(parts) + ")"

    def to_mongo(self, params):
        pattern = re.escape(str(params[self.param]))
        return {"$or": [{path: {"$regex": pattern, "$options": "i"}} for path in self.paths]}

    def matches(self, document, params):
        needle = str(params[self.param]).lower()
        for path in self.paths:
            value = get_path(document, path)
            if isinstance(value, str) and needle in value.lower():
                return True
        return False


@dataclass(frozen=True)
class AllOf(Condition):
    conditions: tuple[Condition, ...]

    def render(self) -> str:
        return "(" + " AND ".join(c.render() for c in self.conditions) + ")"

    def to_mongo(self, params):
        return {"$and": [c.to_mongo(params) for c in self.conditions]}

    def matches(self, document, params):
        return all(c.matches(document, params) for c in self.conditions)


@dataclass(frozen=True)
class AnyOf(Condition):
    conditions: tuple[Condition, ...]

    def render(self) -> str:
        return "(" + " OR ".join(c.render() for c in self.conditions) + ")"

    def to_mongo(self, params):
        return {"$or": [c.to_mongo(params) for c in self.conditions]}

    def matches(self, document, params):
        return any(c.matches(document, params) for c in self.conditions)


@dataclass(frozen=True)
class QuerySpec:
    conditions: tuple[Condition, ...] = ()
    parameters: Mapping[str, Any] = field(default_factory=dict)
    order_by: tuple[tuple[str, str], ...] = ()
    # Parameters whose value changes from page to page (e.g. "now")
    volatile: frozenset[str] = frozenset()

    @property
    def ordering(self) -> tuple[tuple[str, str], ...]:
        """The requested ordering with ``id`` appended as a unique tiebreaker."""
        if any(path == "id" for path, _ in self.order_by):
            return self.order_by
        direction = self.order_by[-1][1] if self.order_by else ASC
        return self.order_by + (("id", direction),)

    def text(self) -> str:
        query = "SELECT * FROM c"
        if self.conditions:
            query += " WHERE " + " AND ".join(c.render() for c in self.conditions)
        order = ", ".join(f"c.{path} {direction.upper()}" for path, direction in self.ordering)
        return f"{query} ORDER BY {order}"

    def fingerprint(self) -> str:
        """Hash of the query text and its stable parameter values."""
        stable = sorted(
            (name, _encode_value(value))
            for name, value in self.parameters.items()
            if name not in self.volatile
        )
        raw = self.text() + json.dumps(stable, separators=(",", ":"), default=str)
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]

    def matches(self, document: Mapping[str, Any]) -> bool:
        return all(c.matches(document, self.parameters) for c in self.conditions)

    def to_mongo_filter(self) -> dict[str, Any]:
        if not self.conditions:
            return {}
        if len(self.conditions) == 1:
            return self.conditions[0].to_mongo(self.parameters)
        return {"$and": [c.to_mongo(self.parameters) for c in self.conditions]}

    def to_mongo_sort(self) -> list[tuple[str, int]]:
        return [(path, 1 if direction == ASC else -1) for path, direction in self.ordering]

    def sort_values(self, document: Mapping[str, Any]) -> list[Any]:
        return [get_path(document, path) for path, _ in self.ordering]

    def sort_documents(self, documents: Iterable[Mapping[str, Any]]) -> list:
        rows = list(documents)
        # Stable multi-pass sort, least significant key first; None sorts lowest
        for path, direction in reversed(self.ordering):
            rows.sort(
                key=lambda doc: (get_path(doc, path) is not None, get_path(doc, path)),
                reverse=direction == DESC,
            )
        return rows

    def resume_after(self, values: Sequence[Any]) -> "QuerySpec":
        """Restrict the query to rows strictly after ``values`` in its ordering."""
        ordering = self.ordering
        parameters = dict(self.parameters)
        names = []
        for index, value in enumerate(values):
            name = f"@after{index}"
            parameters[name] = value
            names.append(name)

        branches = []
        for index, (path, direction) in enumerate(ordering):
            terms: list[Condition] = [
                Comparison(ordering[j][0], "eq", names[j]) for j in range(index)
            ]
            terms.append(Comparison(path, "gt" if direction == ASC else "lt", names[index]))
            branches.append(terms[0] if len(terms) == 1 else AllOf(tuple(terms)))

        keyset = branches[0] if len(branches) == 1 else AnyOf(tuple(branches))
        return QuerySpec(
            conditions=self.conditions + (keyset,),
            parameters=parameters,
            order_by=ordering,
            volatile=self.volatile,
        )


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$dt": value.isoformat()}
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict) and "$dt" in value:
        return datetime.fromisoformat(value["$dt"])
    return value


def encode_continuation_token(spec: QuerySpec, document: Mapping[str, Any]) -> str:
    payload = {
        "f": spec.fingerprint(),
        "v": [_encode_value(v) for v in spec.sort_values(document)],
    }
    raw = json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_continuation_token(spec: QuerySpec, token: str) -> list[Any]:
    """Return the sort values stored in ``token``; rejects foreign or malformed tokens."""
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeEncodeError) as e:
        raise BadRequestError("Invalid continuation token") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("v"), list):
        raise BadRequestError("Invalid continuation token")
    if payload.get("f") != spec.fingerprint():
        raise BadRequestError("Continuation token does not belong to this query")
    if len(payload["v"]) != len(spec.ordering):
        raise BadRequestError("Invalid continuation token")
    try:
        return [_decode_value(v) for v in payload["v"]]
    except (TypeError, ValueError) as e:
        raise BadRequestError("Invalid continuation token") from e


def resolve_sort(
    sort_by: str | None,
    sort_order: str | None,
    sortable: Mapping[str, str],
    default_key: str,
    default_order: str = DESC,
) -> tuple[str, str]:
    """Map a caller-supplied sort key onto a whitelisted path."""
    path = sortable.get(sort_by or "", sortable[default_key])
    direction = sort_order.lower() if sort_order and sort_order.lower() in (ASC, DESC) else default_order
    return path, direction


class QueryBuilder:
    """
    Accumulates AND-ed conditions with generated parameter names.

    >>> spec = (QueryBuilder()
    ...         .where_equals("isActive", True)
    ...         .where_in("characteristics.difficulty", ["advanced"], name="difficulty")
    ...         .where_range("characteristics.distance", 5, None, name="distance")
    ...         .order_by("ratings.average", DESC)
    ...         .build())
    >>> spec.text()
    'SELECT * FROM c WHERE c.isActive = @isActive AND c.characteristics.difficulty = @difficulty AND c.characteristics.distance >= @minDistance ORDER BY c.ratings.average DESC, c.id DESC'
    """

    def __init__(self):
        self._conditions: list[Condition] = []
        self._parameters: dict[str, Any] = {}
        self._order_by: list[tuple[str, str]] = []
        self._volatile: set[str] = set()

    def _param(self, name: str, value: Any) -> str:
        base = f"@{name}"
        key = base
        suffix = 1
        while key in self._parameters:
            key = f"{base}_{suffix}"
            suffix += 1
        self._parameters[key] = value
        return key

    @staticmethod
    def _name_for(path: str, name: str | None) -> str:
        return name or path.rsplit(".", 1)[-1]

    def where(
        self, path: str, op: str, value: Any, name: str | None = None, volatile: bool = False
    ) -> "QueryBuilder":
        """``volatile`` values are left out of the continuation token fingerprint."""
        param = self._param(self._name_for(path, name), value)
        if volatile:
            self._volatile.add(param)
        self._conditions.append(Comparison(path, op, param))
        return self

    def where_equals(self, path: str, value: Any, name: str | None = None) -> "QueryBuilder":
        return self.where(path, "eq", value, name)

    def where_in(self, path: str, values: Sequence[Any] | None, name: str | None = None) -> "QueryBuilder":
        if not values:
            return self
        values = list(dict.fromkeys(values))
        if len(values) == 1:
            return self.where_equals(path, values[0], name)
        base = self._name_for(path, name)
        params = tuple(self._param(f"{base}{index}", value) for index, value in enumerate(values))
        self._conditions.append(In(path, params))
        return self

    def where_range(
        self,
        path: str,
        minimum: Any = None,
        maximum: Any = None,
        name: str | None = None,
    ) -> "QueryBuilder":
        base = self._name_for(path, name)
        suffix = base[:1].upper() + base[1:]
        if minimum is not None:
            self.where(path, "gte", minimum, f"min{suffix}")
        if maximum is not None:
            self.where(path, "lte", maximum, f"max{suffix}")
        return self

    def where_array_contains(self, path: str, value: Any, name: str | None = None) -> "QueryBuilder":
        self._conditions.append(ArrayContains(path, self._param(self._name_for(path, name), value)))
        return self

    def where_array_intersects(
        self, path: str, values: Sequence[Any] | None, name: str | None = None
    ) -> "QueryBuilder":
        if not values:
            return self
        base = self._name_for(path, name)
        params = tuple(self._param(f"{base}{index}", value) for index, value in enumerate(values))
        self._conditions.append(ArrayIntersects(path, params))
        return self

    def where_text(self, paths: Sequence[str], text: str | None, name: str = "searchQuery") -> "QueryBuilder":
        if text is None or not text.strip():
            return self
        self._conditions.append(TextMatch(tuple(paths), self._param(name, text.strip())))
        return self

    def order_by(self, path: str, direction: str = DESC) -> "QueryBuilder":
        self._order_by.append((path, direction))
        return self

    def build(self) -> QuerySpec:
        return QuerySpec(
            conditions=tuple(self._conditions),
            parameters=dict(self._parameters),
            order_by=tuple(self._order_by),
            volatile=frozenset(self._volatile),
        )
