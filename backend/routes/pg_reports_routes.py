"""
PostgreSQL Reports Routes - dashboard metrics and monthly branch reports
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_postgres_session, User
from app.insights.application.use_cases import DashboardUseCase, MonthlyReportUseCase
from app.insights.presentation.response_mapper import (
    dashboard_to_response,
    monthly_report_to_response,
)
from app.requests.domain.models import RequestFilters
from app.requests.domain.status import RequestStatus
from app.settings import settings
from app.shared.domain.errors import DomainError
from app.shared.infrastructure.gemini_client import get_gemini_client
from routes.pg_auth_routes import get_current_user_pg, to_user_summary
from routes.pg_errors import to_http_exception
from routes.pg_requests_routes import build_repository, utcnow

# Create router
pg_reports_router = APIRouter(prefix="/api/pg", tags=["PostgreSQL Reports"])


@pg_reports_router.get("/reports/dashboard")
async def get_dashboard(
    search: Optional[str] = None,
    branch_id: Optional[str] = None,
    department: Optional[str] = None,
    status: Optional[List[str]] = Query(default=None),
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Dashboard numbers over the requests the caller can see"""
    try:
        statuses = tuple(RequestStatus(value) for value in status or [])
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown status filter")

    filters = RequestFilters(
        search=search,
        branch_id=branch_id,
        department=department,
        statuses=statuses,
    )
    use_case = DashboardUseCase(build_repository(session), clock=utcnow)
    metrics = await use_case.execute(filters, to_user_summary(current_user))
    return dashboard_to_response(metrics)


@pg_reports_router.get("/reports/monthly")
async def get_monthly_report(
    branch_id: str,
    year: int,
    month: int,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Completed requests for a branch and month, with an AI written analysis"""
    use_case = MonthlyReportUseCase(
        repository=build_repository(session),
        writer=get_gemini_client(),
        timeout=settings.ai_timeout_seconds,
    )
    try:
        report = await use_case.execute(branch_id, year, month, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return monthly_report_to_response(report)
