from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from timetracking.db.base import Base
from timetracking.db.dependencies import get_db_session
from timetracking.db.session import enable_sqlite_foreign_keys
from timetracking.main import create_app
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
from timetracking.repositories.db_repository import DbRepository


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def repository(db_session: Session) -> DbRepository:
    return DbRepository(db_session)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@dataclass(slots=True)
class Dataset:
    setting: Setting
    holidays: list[Holiday]
    customers: list[Customer]
    projects: list[Project]
    activities: list[Activity]
    orders: list[Order]
    time_sheets: list[TimeSheet]


def seed_dataset(repository: DbRepository) -> Dataset:
    """Two customers with projects, one order and time sheets from Jan to Mar 2020."""

    setting = Setting(key="workdays", value="[1,2,3,4,5]", description="Working days")
    holidays = [
        Holiday(
            title="New Year",
            start_date_local=datetime(2020, 1, 1),
            end_date_local=datetime(2020, 1, 1, 23, 59),
            type=HolidayType.PUBLIC_HOLIDAY,
        ),
        Holiday(
            title="Vacation",
            start_date_local=datetime(2020, 2, 10),
            end_date_local=datetime(2020, 2, 14, 23, 59),
            type=HolidayType.HOLIDAY,
        ),
    ]
    acme = Customer(title="Acme", hourly_rate=Decimal("80.00"), city="Berlin")
    umbrella = Customer(title="Umbrella", hourly_rate=Decimal("95.50"), hidden=True)
    customers = [umbrella, acme]
    repository.add_range([setting])
    repository.add_range(holidays)
    repository.add_range(customers)

    website = Project(title="Website", customer_id=acme.id)
    backend = Project(title="Backend", customer_id=umbrella.id)
    projects = [website, backend]
    repository.add_range(projects)

    development = Activity(title="Development")
    support = Activity(title="Support", customer_id=acme.id, project_id=website.id)
    activities = [support, development]
    repository.add_range(activities)

    order = Order(
        title="Relaunch",
        customer_id=acme.id,
        start_date_local=datetime(2020, 1, 1),
        due_date_local=datetime(2020, 6, 30),
        hourly_rate=Decimal("85.00"),
        budget=Decimal("10000.00"),
    )
    orders = [order]
    repository.add_range(orders)

    time_sheets = [
        TimeSheet(
            customer_id=acme.id,
            activity_id=development.id,
            project_id=website.id,
            order_id=order.id,
            start_date_local=datetime(2020, 1, 15, 9, 0),
            end_date_local=datetime(2020, 1, 15, 17, 0),
            billable=True,
        ),
        TimeSheet(
            customer_id=acme.id,
            activity_id=support.id,
            project_id=website.id,
            start_date_local=datetime(2020, 2, 3, 8, 0),
            end_date_local=datetime(2020, 2, 3, 12, 0),
            billable=False,
        ),
        TimeSheet(
            customer_id=umbrella.id,
            activity_id=development.id,
            project_id=backend.id,
            start_date_local=datetime(2020, 3, 31, 10, 0),
            end_date_local=None,
            billable=True,
        ),
    ]
    repository.add_range(time_sheets)
    repository.save_changes()

    return Dataset(
        setting=setting,
        holidays=holidays,
        customers=customers,
        projects=projects,
        activities=activities,
        orders=orders,
        time_sheets=time_sheets,
    )


@pytest.fixture()
def dataset(repository: DbRepository) -> Dataset:
    return seed_dataset(repository)
