"""Shared fixtures: an isolated SQLite file per test, services wired the way
``create_app`` wires them, and a TestClient over a fresh application."""

from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from tripcost.core.config import Settings
from tripcost.core.security import Actor
from tripcost.db.dal import Database
from tripcost.db.migrate import apply_migrations
from tripcost.main import create_app
from tripcost.models.category import CategoryIn
from tripcost.models.constants import Role
from tripcost.services.budget_limits import BudgetLimitRegistry
from tripcost.services.budget_usage import UsageCacheRefresher
from tripcost.services.categories import CategoryService
from tripcost.services.expense_mutations import ExpenseMutationCoordinator
from tripcost.services.quarterly import QuarterlyRollupService
from tripcost.services.report_workflow import ReportWorkflow
from tripcost.services.usage_events import InternalUsageGateway, UsageRefreshNotifier

INTERNAL_TOKEN = "test-internal-token"
TODAY = date(2024, 12, 31)

ALICE = Actor("alice")
BOB = Actor("bob")
ADMIN = Actor("auditor", Role.ADMIN)


def headers(user_id: str, role: str = "user") -> dict:
    return {"X-User-Id": user_id, "X-User-Role": role}


ALICE_HEADERS = headers("alice")
BOB_HEADERS = headers("bob")
ADMIN_HEADERS = headers("auditor", "admin")


@pytest.fixture
def settings(tmp_path) -> Settings:
    s = Settings(
        data_dir=tmp_path,
        db_path=tmp_path / "tripcost-test.sqlite3",
        debug=False,
        internal_api_token=INTERNAL_TOKEN,
        usage_refresh_mode="sync",
    )
    s.init_post_load()
    return s


@pytest.fixture
def db(settings) -> Database:
    apply_migrations(settings.db_path)
    return Database(settings.db_path)


@pytest.fixture
def gateway(db) -> InternalUsageGateway:
    return InternalUsageGateway(UsageCacheRefresher(db), INTERNAL_TOKEN)


@pytest.fixture
def notifier(gateway):
    n = UsageRefreshNotifier(gateway, INTERNAL_TOKEN, mode="sync")
    yield n
    n.close()


@pytest.fixture
def coordinator(db, notifier) -> ExpenseMutationCoordinator:
    return ExpenseMutationCoordinator(db, notifier=notifier, today=lambda: TODAY)


@pytest.fixture
def workflow(db) -> ReportWorkflow:
    return ReportWorkflow(db)


@pytest.fixture
def quarterly(db) -> QuarterlyRollupService:
    return QuarterlyRollupService(db)


@pytest.fixture
def registry(db) -> BudgetLimitRegistry:
    return BudgetLimitRegistry(db)


@pytest.fixture
def category_id(db) -> int:
    return CategoryService(db).create(ADMIN, CategoryIn(name="Mileage")).id


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c
