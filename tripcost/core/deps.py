"""FastAPI dependency providers.

Everything is built from objects stored on ``app.state`` by ``create_app`` so
an application created with a settings override (tests, temp DBs) never falls
back to the process-wide cached settings.
"""

from fastapi import Request

from tripcost.core.config import Settings
from tripcost.db.dal import Database
from tripcost.services.alerts import BudgetAlertEvaluator
from tripcost.services.budget_limits import BudgetLimitRegistry
from tripcost.services.budget_usage import BudgetUsageCalculator, UsageCacheRefresher
from tripcost.services.categories import CategoryService
from tripcost.services.expense_mutations import ExpenseMutationCoordinator
from tripcost.services.quarterly import QuarterlyRollupService
from tripcost.services.report_workflow import ReportWorkflow
from tripcost.services.usage_events import InternalUsageGateway, UsageRefreshNotifier


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_notifier(request: Request) -> UsageRefreshNotifier:
    return request.app.state.usage_notifier


def get_gateway(request: Request) -> InternalUsageGateway:
    return request.app.state.usage_gateway


def get_coordinator(request: Request) -> ExpenseMutationCoordinator:
    return ExpenseMutationCoordinator(get_db(request), notifier=get_notifier(request))


def get_workflow(request: Request) -> ReportWorkflow:
    return ReportWorkflow(get_db(request))


def get_quarterly(request: Request) -> QuarterlyRollupService:
    return QuarterlyRollupService(get_db(request))


def get_categories(request: Request) -> CategoryService:
    return CategoryService(get_db(request))


def get_registry(request: Request) -> BudgetLimitRegistry:
    settings = get_app_settings(request)
    return BudgetLimitRegistry(
        get_db(request), default_threshold=settings.default_notification_threshold
    )


def get_calculator(request: Request) -> BudgetUsageCalculator:
    return BudgetUsageCalculator(get_db(request))


def get_evaluator(request: Request) -> BudgetAlertEvaluator:
    return BudgetAlertEvaluator(get_db(request))


def get_refresher(request: Request) -> UsageCacheRefresher:
    return UsageCacheRefresher(get_db(request))
