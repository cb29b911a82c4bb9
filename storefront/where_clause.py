"""
Query-string driven filtering for list endpoints.

``WhereClause`` takes a base SQLAlchemy query, the model it selects and
the request parameters, and applies, in call order:

- ``search()``: case-insensitive substring match on ``model.name``
- ``pagination(n)``: 1-indexed ``page`` with a fixed page size
- ``filter()``: every remaining parameter, with the shorthand keys
  ``gte``/``lte``/``gt``/``lt`` rewritten to ``$gte``/``$lte``/``$gt``/``$lt``

Example::

    GET /products?search=shoe&page=2&price[gte]=100&brand=acme

    clause = WhereClause(db.query(Product), Product, params)
    products = clause.search().pagination(6).filter().all()

Filters are passed through as given; only the key rewrite happens.
"""

import operator
import re
import uuid
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import Boolean, DateTime
from sqlalchemy.orm import Query

from storefront.errors import ValidationError

SHORTHAND_OPERATORS = ("gte", "lte", "gt", "lt")
RESERVED_PARAMS = ("search", "page")

OPERATORS = {
    "$gte": operator.ge,
    "$lte": operator.le,
    "$gt": operator.gt,
    "$lt": operator.lt,
    "$eq": operator.eq,
    "$ne": operator.ne,
}

_BRACKET_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])*)$")


def parse_query_params(items: Iterable[tuple[str, str]]) -> dict:
    """
    Turn flat ``price[gte]=10`` style pairs into nested dicts.
    A key given more than once collects its values into a list.
    """
    parsed: dict[str, Any] = {}

    for raw_key, value in items:
        match = _BRACKET_KEY.match(raw_key)
        if not match:
            path = [raw_key]
        else:
            path = [match.group(1)] + re.findall(r"\[([^\[\]]*)\]", match.group(2))

        target = parsed
        for part in path[:-1]:
            existing = target.get(part)
            if not isinstance(existing, dict):
                existing = {}
                target[part] = existing
            target = existing

        leaf = path[-1]
        if leaf in target and not isinstance(target[leaf], dict):
            previous = target[leaf]
            target[leaf] = previous + [value] if isinstance(previous, list) else [previous, value]
        else:
            target[leaf] = value

    return parsed


def rewrite_operators(params: dict) -> dict:
    """``{"price": {"gte": 10}}`` -> ``{"price": {"$gte": 10}}``, at any depth."""
    rewritten = {}
    for key, value in params.items():
        if key in SHORTHAND_OPERATORS:
            key = f"${key}"
        if isinstance(value, dict):
            value = rewrite_operators(value)
        rewritten[key] = value
    return rewritten


def _coerce(column, field: str, value: Any) -> Any:
    if isinstance(value, list):
        return [_coerce(column, field, v) for v in value]

    column_type = column.type
    try:
        if isinstance(column_type, Boolean):
            if isinstance(value, bool):
                return value
            lowered = str(value).lower()
            if lowered not in ("true", "false", "1", "0"):
                raise ValueError(value)
            return lowered in ("true", "1")
        if isinstance(column_type, DateTime):
            return value if isinstance(value, datetime) else datetime.fromisoformat(str(value))

        python_type = column_type.python_type
        if isinstance(value, python_type):
            return value
        if python_type is uuid.UUID:
            return uuid.UUID(str(value))
        return python_type(value)
    except (ValueError, TypeError, NotImplementedError):
        raise ValidationError(f"Invalid value for '{field}': {value!r}")


class WhereClause:
    def __init__(self, query: Query, model, params: dict, aliases: dict | None = None):
        self.base = query
        self.model = model
        self.params = dict(params)
        self.aliases = aliases or {}

        self.conditions: dict = {}
        self.search_term: str | None = None
        self.offset: int | None = None
        self.limit: int | None = None
        self._criteria: list = []

    # -------------------------
    # chainable steps
    # -------------------------

    def search(self) -> "WhereClause":
        term = self.params.get("search")
        if term:
            self.search_term = str(term)
            escaped = (
                self.search_term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            )
            self._criteria.append(self.model.name.ilike(f"%{escaped}%", escape="\\"))
        return self

    def pagination(self, results_per_page: int) -> "WhereClause":
        raw_page = self.params.get("page") or 1
        try:
            current_page = int(raw_page)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid page: {raw_page!r}")
        if current_page < 1:
            raise ValidationError("Page numbers start at 1")

        self.offset = results_per_page * (current_page - 1)
        self.limit = results_per_page
        return self

    def filter(self) -> "WhereClause":
        remaining = {k: v for k, v in self.params.items() if k not in RESERVED_PARAMS}
        self.conditions = rewrite_operators(remaining)

        for field, value in self.conditions.items():
            self._criteria.extend(self._compile(field, value))
        return self

    # -------------------------
    # query building
    # -------------------------

    def _column(self, field: str):
        name = self.aliases.get(field, field)
        column = self.model.__table__.columns.get(name)
        if column is None:
            raise ValidationError(f"Unknown filter field: '{field}'")
        return getattr(self.model, column.key), column

    def _compile(self, field: str, value: Any) -> list:
        attribute, column = self._column(field)

        if not isinstance(value, dict):
            coerced = _coerce(column, field, value)
            if isinstance(coerced, list):
                return [attribute.in_(coerced)]
            return [attribute == coerced]

        criteria = []
        for op, operand in value.items():
            if op == "$in":
                values = operand if isinstance(operand, list) else str(operand).split(",")
                criteria.append(attribute.in_(_coerce(column, field, values)))
                continue
            compare = OPERATORS.get(op)
            if compare is None:
                raise ValidationError(f"Unsupported filter operator: '{op}'")
            criteria.append(compare(attribute, _coerce(column, field, operand)))
        return criteria

    def filtered(self) -> Query:
        """The query with search/filter applied but without pagination."""
        return self.base.filter(*self._criteria) if self._criteria else self.base

    def build(self) -> Query:
        query = self.filtered()
        if self.offset:
            query = query.offset(self.offset)
        if self.limit is not None:
            query = query.limit(self.limit)
        return query

    def count(self) -> int:
        return self.filtered().count()

    def all(self) -> list:
        return self.build().all()
