"""
JSON routes for a UI shell.

Thin transport over AppContext: every route resolves its inputs, calls one
context operation and maps analytics errors to HTTP status codes.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import date
from typing import TypeVar

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from ..context import AppContext
from ..core.dates import DateRange, DateRangePreset
from ..core.models import Account, SeriesMetric
from ..errors import AnalyticsError, InvalidCredentialsError, is_session_problem

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_date_range(
    period: str | None,
    custom_start: str | None = None,
    custom_end: str | None = None,
    default: str = DateRangePreset.THIS_WEEK.value,
) -> DateRange:
    """Parse a preset name or custom dates into a DateRange.

    Args:
        period: Preset name (today, yesterday, week, 7d, 30d, month,
            last_month, year, last_year, custom)
        custom_start: Custom start date in YYYY-MM-DD format
        custom_end: Custom end date in YYYY-MM-DD format
        default: Preset used when neither period nor dates are given

    Raises:
        HTTPException: If the period is unknown or custom dates are invalid
    """
    # Handle custom date range
    if period == DateRangePreset.CUSTOM.value or (custom_start and custom_end):
        if not custom_start or not custom_end:
            raise HTTPException(
                status_code=400,
                detail="Both start and end dates are required for custom date range"
            )

        try:
            start = date.fromisoformat(custom_start)
            end = date.fromisoformat(custom_end)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail="Invalid date format. Use YYYY-MM-DD (e.g., 2024-01-15)"
            ) from None

        if end < start:
            raise HTTPException(
                status_code=400,
                detail="End date must be on or after start date"
            )

        if end > date.today():
            raise HTTPException(
                status_code=400,
                detail="End date cannot be in the future"
            )

        return DateRange.custom(start, end)

    try:
        return DateRange.from_preset(period or default)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail=f"Unknown period '{period}'") from None


def _http_error(e: AnalyticsError) -> HTTPException:
    if is_session_problem(e):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, InvalidCredentialsError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


async def _call(operation: Callable[[], Awaitable[T]]) -> T:
    """Run a context operation, translating analytics errors."""
    try:
        return await operation()
    except AnalyticsError as e:
        logger.error(f"Analytics request failed: {e}")
        raise _http_error(e) from e


def _account_summary(account: Account, active_id: str | None) -> dict:
    """Account fields safe to hand to a UI (no credentials)."""
    return {
        "id": account.id,
        "name": account.name,
        "display_name": account.display_name,
        "server_url": account.server_url,
        "provider_type": account.provider_type.value,
        "sites": account.sites,
        "active": account.id == active_id,
    }


def create_dashboard_router(context: AppContext) -> APIRouter:
    """Create the JSON router for one application context.

    Args:
        context: Wired application services

    Returns:
        FastAPI APIRouter to include in your app
    """
    router = APIRouter()
    registry = context.registry
    default_range = context.config.default_range

    def _active_id() -> str | None:
        account = registry.active_account
        return account.id if account else None

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @router.get("/accounts")
    async def list_accounts():
        active_id = _active_id()
        return [_account_summary(account, active_id) for account in registry.accounts]

    @router.post("/accounts/{account_id}/activate")
    async def activate_account(account_id: str):
        account = await context.switch_account(account_id)
        if account is None:
            raise HTTPException(status_code=404, detail="Account not found")
        return _account_summary(account, _active_id())

    @router.delete("/accounts/{account_id}")
    async def delete_account(account_id: str):
        account = await context.remove_account(account_id)
        if account is None:
            raise HTTPException(status_code=404, detail="Account not found")
        return {"removed": account.id, "active_id": _active_id()}

    # -------------------------------------------------------------------------
    # Dashboard
    # -------------------------------------------------------------------------

    @router.get("/websites")
    async def list_websites():
        return await _call(lambda: context.provider().list_websites())

    @router.get("/dashboard")
    async def dashboard(
        period: str | None = None,
        start: str | None = None,
        end: str | None = None,
    ):
        date_range = _parse_date_range(period, start, end, default=default_range)
        return await _call(lambda: context.dashboard.refresh(date_range))

    @router.get("/websites/{site_id}")
    async def website_detail(
        site_id: str,
        period: str | None = None,
        start: str | None = None,
        end: str | None = None,
    ):
        date_range = _parse_date_range(period, start, end, default=default_range)
        return await _call(lambda: context.load_detail(site_id, date_range))

    @router.get("/websites/{site_id}/compare")
    async def compare(
        site_id: str,
        a_period: str | None = None,
        a_start: str | None = None,
        a_end: str | None = None,
        b_period: str | None = None,
        b_start: str | None = None,
        b_end: str | None = None,
        metric: list[SeriesMetric] = Query(default=[SeriesMetric.PAGEVIEWS, SeriesMetric.VISITORS]),
    ):
        range_a = _parse_date_range(a_period, a_start, a_end, default=default_range)
        if b_period or b_start or b_end:
            range_b = _parse_date_range(b_period, b_start, b_end)
        else:
            range_b = range_a.previous_range()
        return await _call(lambda: context.comparison().compare(site_id, range_a, range_b, metric))

    return router
