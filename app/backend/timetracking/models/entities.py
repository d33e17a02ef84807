"""ORM entities for the time tracking schema."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timetracking.db.base import Base


class HolidayType(str, enum.Enum):
    PUBLIC_HOLIDAY = "public_holiday"
    HOLIDAY = "holiday"


class EntityTimestamps:
    """Audit columns stamped by the repository, never by clients."""

    created: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    modified: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class Setting(EntityTimestamps, Base):
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Holiday(EntityTimestamps, Base):
    __tablename__ = "holidays"
    __table_args__ = (Index("ix_holidays_start_date_local", "start_date_local"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date_local: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_date_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    end_date_local: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    type: Mapped[HolidayType] = mapped_column(
        SQLEnum(
            HolidayType,
            name="holiday_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=HolidayType.HOLIDAY,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)


class Customer(EntityTimestamps, Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    contact_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    street: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Deleting a referenced customer is rejected by the database, never cascaded.
    projects: Mapped[list[Project]] = relationship(back_populates="customer", passive_deletes="all")
    orders: Mapped[list[Order]] = relationship(back_populates="customer", passive_deletes="all")


class Project(EntityTimestamps, Base):
    __tablename__ = "projects"
    __table_args__ = (Index("ix_projects_customer_id", "customer_id"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    customer: Mapped[Customer | None] = relationship(back_populates="projects")


class Activity(EntityTimestamps, Base):
    __tablename__ = "activities"
    __table_args__ = (
        Index("ix_activities_customer_id", "customer_id"),
        Index("ix_activities_project_id", "project_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=True
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    customer: Mapped[Customer | None] = relationship()
    project: Mapped[Project | None] = relationship()


class Order(EntityTimestamps, Base):
    __tablename__ = "orders"
    __table_args__ = (Index("ix_orders_customer_id", "customer_id"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    start_date_local: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_date_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    due_date_local: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    due_date_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    budget: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    customer: Mapped[Customer] = relationship(back_populates="orders")


class TimeSheet(EntityTimestamps, Base):
    __tablename__ = "time_sheets"
    __table_args__ = (
        Index("ix_time_sheets_customer_id", "customer_id"),
        Index("ix_time_sheets_activity_id", "activity_id"),
        Index("ix_time_sheets_project_id", "project_id"),
        Index("ix_time_sheets_order_id", "order_id"),
        Index("ix_time_sheets_start_date_local", "start_date_local"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    activity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("activities.id", ondelete="RESTRICT"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="RESTRICT"), nullable=True
    )
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="RESTRICT"), nullable=True
    )
    issue: Mapped[str | None] = mapped_column(String(250), nullable=True)
    start_date_local: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    start_date_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    end_date_local: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    end_date_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    customer: Mapped[Customer] = relationship()
    activity: Mapped[Activity] = relationship()
    project: Mapped[Project | None] = relationship()
    order: Mapped[Order | None] = relationship()


# Parents before children; bulk inserts follow this order, truncation the reverse.
ENTITY_DEPENDENCY_ORDER: tuple[type[Base], ...] = (
    Setting,
    Holiday,
    Customer,
    Project,
    Activity,
    Order,
    TimeSheet,
)
