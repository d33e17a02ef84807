"""Composes optional query clauses into one SQLAlchemy select."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Select
from sqlalchemy import select as sa_select
from sqlalchemy.orm import selectinload

Clause = Any


def as_clauses(value: Clause | Sequence[Clause] | None) -> list[Clause]:
    """Normalize a single clause, a sequence of clauses or None to a list."""

    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def include_option(entity: type, path: str) -> Any:
    """Eager-load option for a relationship path such as ``"project.customer"``."""

    option: Any = None
    current: type = entity
    for name in path.split("."):
        attribute = getattr(current, name)
        option = selectinload(attribute) if option is None else option.selectinload(attribute)
        current = attribute.property.mapper.class_
    assert option is not None
    return option


def build_query(
    entity: type,
    *,
    select: Clause | Sequence[Clause] | None = None,
    where: Clause | Sequence[Clause] | None = None,
    order_by: Clause | Sequence[Clause] | None = None,
    group_by: Clause | Sequence[Clause] | None = None,
    result_order_by: Clause | Sequence[Clause] | None = None,
    includes: Sequence[str] | None = None,
    distinct: bool = False,
    skip: int | None = None,
    take: int | None = None,
) -> Select:
    """Build a deferred select over ``entity``.

    Clauses apply in a fixed order: filter, include, order, project (with
    optional grouping), result order, distinct, skip, take. Every clause is
    optional; without any the query yields every row of the entity.

    ``order_by`` orders entity rows before projection, ``result_order_by``
    orders projected (typically grouped) rows. Only one of them may be given.
    Includes are ignored for projections because no entity rows are returned.
    """

    if order_by is not None and result_order_by is not None:
        raise ValueError("Either entity ordering or result ordering may be supplied, not both.")

    query = sa_select(entity)

    for clause in as_clauses(where):
        query = query.where(clause)

    projection = as_clauses(select)
    if includes and not projection:
        query = query.options(*(include_option(entity, path) for path in includes))

    entity_ordering = as_clauses(order_by)
    if entity_ordering:
        query = query.order_by(*entity_ordering)

    grouping = as_clauses(group_by)
    if grouping:
        query = query.group_by(*grouping)

    if projection:
        query = query.with_only_columns(*projection, maintain_column_froms=True)

    result_ordering = as_clauses(result_order_by)
    if result_ordering:
        query = query.order_by(*result_ordering)

    if distinct:
        query = query.distinct()

    if skip is not None:
        query = query.offset(skip)

    if take is not None:
        query = query.limit(take)

    return query
