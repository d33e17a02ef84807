"""Derives per-entity predicates from one shared export filter set."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, or_

from timetracking.models.entities import Activity, Customer, Holiday, Order, Project, TimeSheet


@dataclass(slots=True)
class ExportFilterSet:
    customer_ids: list[UUID] = field(default_factory=list)
    project_ids: list[UUID] = field(default_factory=list)
    activity_ids: list[UUID] = field(default_factory=list)
    order_ids: list[UUID] = field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    include_hidden: bool = True


def _overlaps(start_column, end_column, filters: ExportFilterSet) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if filters.start_date is not None:
        conditions.append(or_(end_column.is_(None), end_column >= filters.start_date))
    if filters.end_date is not None:
        conditions.append(start_column < filters.end_date)
    return conditions


class FilterFactory:
    """Builds the ``where`` clauses used when exporting each entity type.

    An empty list means the entity type is not filtered.
    """

    def __init__(self, filters: ExportFilterSet | None = None) -> None:
        self.filters = filters or ExportFilterSet()

    def holiday_filter(self) -> list[ColumnElement[bool]]:
        return _overlaps(Holiday.start_date_local, Holiday.end_date_local, self.filters)

    def customer_filter(self) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if self.filters.customer_ids:
            conditions.append(Customer.id.in_(self.filters.customer_ids))
        if not self.filters.include_hidden:
            conditions.append(Customer.hidden.is_(False))
        return conditions

    def project_filter(self) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if self.filters.project_ids:
            conditions.append(Project.id.in_(self.filters.project_ids))
        if self.filters.customer_ids:
            conditions.append(Project.customer_id.in_(self.filters.customer_ids))
        if not self.filters.include_hidden:
            conditions.append(Project.hidden.is_(False))
        return conditions

    def activity_filter(self) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if self.filters.activity_ids:
            conditions.append(Activity.id.in_(self.filters.activity_ids))
        # Activities without customer or project are shared and always kept.
        if self.filters.customer_ids:
            conditions.append(
                or_(Activity.customer_id.is_(None), Activity.customer_id.in_(self.filters.customer_ids))
            )
        if self.filters.project_ids:
            conditions.append(
                or_(Activity.project_id.is_(None), Activity.project_id.in_(self.filters.project_ids))
            )
        if not self.filters.include_hidden:
            conditions.append(Activity.hidden.is_(False))
        return conditions

    def order_filter(self) -> list[ColumnElement[bool]]:
        conditions = _overlaps(Order.start_date_local, Order.due_date_local, self.filters)
        if self.filters.order_ids:
            conditions.append(Order.id.in_(self.filters.order_ids))
        if self.filters.customer_ids:
            conditions.append(Order.customer_id.in_(self.filters.customer_ids))
        if not self.filters.include_hidden:
            conditions.append(Order.hidden.is_(False))
        return conditions

    def time_sheet_filter(self) -> list[ColumnElement[bool]]:
        conditions = _overlaps(TimeSheet.start_date_local, TimeSheet.end_date_local, self.filters)
        if self.filters.customer_ids:
            conditions.append(TimeSheet.customer_id.in_(self.filters.customer_ids))
        if self.filters.project_ids:
            conditions.append(TimeSheet.project_id.in_(self.filters.project_ids))
        if self.filters.activity_ids:
            conditions.append(TimeSheet.activity_id.in_(self.filters.activity_ids))
        if self.filters.order_ids:
            conditions.append(TimeSheet.order_id.in_(self.filters.order_ids))
        return conditions
