"""ORM model package."""

from timetracking.models.entities import (
    ENTITY_DEPENDENCY_ORDER,
    Activity,
    Customer,
    Holiday,
    HolidayType,
    Order,
    Project,
    Setting,
    TimeSheet,
)

__all__ = [
    "ENTITY_DEPENDENCY_ORDER",
    "Activity",
    "Customer",
    "Holiday",
    "HolidayType",
    "Order",
    "Project",
    "Setting",
    "TimeSheet",
]
