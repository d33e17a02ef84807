"""Application service for dataset export, import, truncation and reset."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime
from pathlib import Path

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from timetracking.core.config import Settings, get_settings
from timetracking.models.entities import (
    ENTITY_DEPENDENCY_ORDER,
    Activity,
    Customer,
    Holiday,
    Order,
    Project,
    Setting,
    TimeSheet,
)
from timetracking.repositories.db_repository import DbRepository, utc_now
from timetracking.schemas.database_export import (
    ActivityRow,
    CustomerRow,
    DatabaseExport,
    HolidayRow,
    OrderRow,
    ProjectRow,
    SettingRow,
    TimeSheetRow,
)
from timetracking.services.filter_factory import ExportFilterSet, FilterFactory

logger = logging.getLogger(__name__)


def absolute_month(value: datetime) -> int:
    return value.year * 12 + value.month


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    return add_months(value, years * 12)


class MaintenanceService:
    """Moves the whole dataset in and out of the database."""

    def __init__(self, repository: DbRepository, settings: Settings | None = None) -> None:
        self.repo = repository
        self.settings = settings or get_settings()

    def export_data(self, filters: ExportFilterSet | None = None) -> DatabaseExport:
        factory = FilterFactory(filters)
        repo = self.repo

        settings = repo.get(Setting, order_by=Setting.key)
        holidays = repo.get(
            Holiday,
            where=factory.holiday_filter(),
            order_by=[Holiday.start_date_local, Holiday.title],
        )
        customers = repo.get(Customer, where=factory.customer_filter(), order_by=[Customer.title, Customer.id])
        projects = repo.get(Project, where=factory.project_filter(), order_by=[Project.title, Project.id])
        activities = repo.get(Activity, where=factory.activity_filter(), order_by=[Activity.title, Activity.id])
        orders = repo.get(
            Order,
            where=factory.order_filter(),
            order_by=[Order.start_date_local, Order.title],
        )
        time_sheets = repo.get(
            TimeSheet,
            where=factory.time_sheet_filter(),
            order_by=[TimeSheet.start_date_local, TimeSheet.id],
        )

        return DatabaseExport(
            database_model_hash=repo.get_database_model_hash(),
            settings=[SettingRow.model_validate(row) for row in settings],
            holidays=[HolidayRow.model_validate(row) for row in holidays],
            customers=[CustomerRow.model_validate(row) for row in customers],
            projects=[ProjectRow.model_validate(row) for row in projects],
            activities=[ActivityRow.model_validate(row) for row in activities],
            orders=[OrderRow.model_validate(row) for row in orders],
            time_sheets=[TimeSheetRow.model_validate(row) for row in time_sheets],
        )

    def import_data(self, database_export: DatabaseExport) -> None:
        """Replace all data with the document's content.

        Truncation and inserts share one transaction, so a failed import
        leaves the previous data in place.
        """

        current_hash = self.repo.get_database_model_hash()
        import_hash = database_export.database_model_hash
        if current_hash.lower() != import_hash.lower():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    "The database schema of data to import must match current database schema. "
                    f"Current database version {current_hash}, database version to import: {import_hash}"
                ),
            )

        try:
            with self.repo.create_transaction_scope() as scope:
                self.truncate_data()

                logger.info("Import database ...")
                for collection in database_export.collections():
                    self.repo.bulk_add_range([row.to_entity() for row in collection])

                scope.complete()
        except IntegrityError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Data to import violates database constraints; nothing was imported.",
            ) from exc

    def truncate_data(self) -> None:
        logger.info("Truncate database...")

        with self.repo.create_transaction_scope() as scope:
            for entity in reversed(ENTITY_DEPENDENCY_ORDER):
                self.repo.bulk_remove(entity)
            scope.complete()

    def reset_database(self) -> bool:
        """Reload the configured backup; returns False when the feature is disabled."""

        if not self.settings.data_reset_enabled:
            return False

        logger.info("Start database reset...")

        source = Path(self.settings.data_reset_source)
        logger.info("Read database backup from '%s' ...", source)
        try:
            database_export = DatabaseExport.model_validate_json(source.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Database backup '{source}' could not be read.",
            ) from exc

        with self.repo.create_transaction_scope() as scope:
            self.truncate_data()

            logger.info("Import database backup")
            self.import_data(database_export)

            if self.settings.data_reset_adjust_timestamps:
                logger.info("Adjust timestamps...")
                self.adjust_time_stamps()

            scope.complete()

        logger.info("Database reset completed.")
        return True

    def adjust_time_stamps(self, now: datetime | None = None) -> None:
        """Move all dates so the latest time sheet month becomes the current month."""

        min_start = self.repo.min(TimeSheet, TimeSheet.start_date_local)
        max_start = self.repo.max(TimeSheet, TimeSheet.start_date_local)
        if min_start is None or max_start is None:
            logger.info("No time sheets found, timestamps left unchanged.")
            return

        now = now or utc_now()
        period_in_months = absolute_month(max_start) - absolute_month(min_start) + 1
        first_of_this_month = datetime(now.year, now.month, 1)
        new_start = add_months(first_of_this_month, -(period_in_months - 1))

        months_to_shift = absolute_month(new_start) - absolute_month(min_start)
        years_to_shift = new_start.year - min_start.year

        with self.repo.create_transaction_scope() as scope:
            self.repo.bulk_update(
                TimeSheet,
                None,
                lambda row: {
                    "start_date_local": add_months(row.start_date_local, months_to_shift),
                    "end_date_local": (
                        add_months(row.end_date_local, months_to_shift) if row.end_date_local else None
                    ),
                    "created": new_start,
                    "modified": new_start,
                },
            )
            self.repo.bulk_update(
                Order,
                None,
                lambda row: {
                    "start_date_local": add_months(row.start_date_local, months_to_shift),
                    "due_date_local": add_months(row.due_date_local, months_to_shift),
                    "created": new_start,
                    "modified": new_start,
                },
            )
            self.repo.bulk_update(
                Holiday,
                None,
                lambda row: {
                    "start_date_local": add_years(row.start_date_local, years_to_shift),
                    "end_date_local": add_years(row.end_date_local, years_to_shift),
                    "created": new_start,
                    "modified": new_start,
                },
            )
            scope.complete()
