"""Portable document holding the complete dataset."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

from timetracking.db.base import Base
from timetracking.models.entities import (
    Activity,
    Customer,
    Holiday,
    HolidayType,
    Order,
    Project,
    Setting,
    TimeSheet,
)

# Class bodies may define a `type` field that shadows the builtin.
EntityType = type[Base]


class ExportRow(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_pascal, populate_by_name=True)

    entity: ClassVar[EntityType]

    created: datetime
    modified: datetime

    def to_entity(self) -> Base:
        return self.entity(**self.model_dump())


class SettingRow(ExportRow):
    entity: ClassVar[EntityType] = Setting

    key: str = Field(max_length=100)
    value: str
    description: str | None = Field(default=None, max_length=100)


class HolidayRow(ExportRow):
    entity: ClassVar[EntityType] = Holiday

    id: UUID
    title: str = Field(max_length=100)
    start_date_local: datetime
    start_date_offset: int = 0
    end_date_local: datetime
    end_date_offset: int = 0
    type: HolidayType = HolidayType.HOLIDAY
    user_id: UUID | None = None


class CustomerRow(ExportRow):
    entity: ClassVar[EntityType] = Customer

    id: UUID
    title: str = Field(max_length=100)
    number: str | None = None
    department: str | None = None
    company_name: str | None = None
    contact_name: str | None = None
    hourly_rate: Decimal = Decimal("0.00")
    street: str | None = None
    zip_code: str | None = None
    city: str | None = None
    country: str | None = None
    comment: str | None = None
    hidden: bool = False


class ProjectRow(ExportRow):
    entity: ClassVar[EntityType] = Project

    id: UUID
    title: str = Field(max_length=100)
    customer_id: UUID | None = None
    comment: str | None = None
    hidden: bool = False


class ActivityRow(ExportRow):
    entity: ClassVar[EntityType] = Activity

    id: UUID
    title: str = Field(max_length=100)
    customer_id: UUID | None = None
    project_id: UUID | None = None
    comment: str | None = None
    hidden: bool = False


class OrderRow(ExportRow):
    entity: ClassVar[EntityType] = Order

    id: UUID
    title: str = Field(max_length=100)
    description: str | None = None
    number: str | None = None
    customer_id: UUID
    start_date_local: datetime
    start_date_offset: int = 0
    due_date_local: datetime
    due_date_offset: int = 0
    hourly_rate: Decimal = Decimal("0.00")
    budget: Decimal = Decimal("0.00")
    comment: str | None = None
    hidden: bool = False


class TimeSheetRow(ExportRow):
    entity: ClassVar[EntityType] = TimeSheet

    id: UUID
    customer_id: UUID
    activity_id: UUID
    project_id: UUID | None = None
    order_id: UUID | None = None
    issue: str | None = None
    start_date_local: datetime
    start_date_offset: int = 0
    end_date_local: datetime | None = None
    end_date_offset: int | None = None
    billable: bool = True
    comment: str | None = None
    user_id: UUID | None = None


class DatabaseExport(BaseModel):
    """One ordered collection per entity type plus the schema fingerprint.

    Keys are written in snake_case; PascalCase keys (`DatabaseModelHash`,
    `TimeSheets`, `StartDateLocal`) are accepted when reading.
    """

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    database_model_hash: str
    settings: list[SettingRow] = Field(default_factory=list)
    holidays: list[HolidayRow] = Field(default_factory=list)
    customers: list[CustomerRow] = Field(default_factory=list)
    projects: list[ProjectRow] = Field(default_factory=list)
    activities: list[ActivityRow] = Field(default_factory=list)
    orders: list[OrderRow] = Field(default_factory=list)
    time_sheets: list[TimeSheetRow] = Field(default_factory=list)

    def collections(self) -> list[list[ExportRow]]:
        """Collections in dependency order, parents first."""

        return [
            self.settings,
            self.holidays,
            self.customers,
            self.projects,
            self.activities,
            self.orders,
            self.time_sheets,
        ]
