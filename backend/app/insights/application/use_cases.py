from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple

from app.catalog.application.ports import CatalogRepository
from app.catalog.domain.models import SupplierSuggestion
from app.identity.domain.models import UserSummary
from app.insights.application.ports import ReportWriter, SupplierAdvisor
from app.insights.domain.queries import (
    DashboardMetrics,
    MonthlySummary,
    apply_filters,
    dashboard_metrics,
    is_visible,
    monthly_summary,
    visible_requests,
)
from app.requests.application.ports import PurchaseRequestRepository
from app.requests.domain.models import PurchaseRequest, RequestFilters
from app.requests.domain.status import RequestStatus
from app.shared.application.external import call_external
from app.shared.domain.errors import AuthorizationError, NotFound, ValidationError

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ListRequestsQuery:
    search: Optional[str] = None
    branch_id: Optional[str] = None
    department: Optional[str] = None
    statuses: Tuple[RequestStatus, ...] = ()
    min_total: Optional[float] = None
    max_total: Optional[float] = None
    requester_id: Optional[str] = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class RequestPage:
    items: Sequence[PurchaseRequest]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True)
class MonthlyReport:
    branch_name: str
    month_label: str
    summary: MonthlySummary
    ai_analysis: str = ""


@dataclass(frozen=True)
class SuggestionItem:
    name: str
    category: str
    quantity: int


@dataclass(frozen=True)
class SupplierSuggestionQuery:
    branch_id: str
    items: Sequence[SuggestionItem] = field(default_factory=tuple)


class ListRequestsUseCase:
    def __init__(self, repository: PurchaseRequestRepository, max_limit: int = 200) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(self, query: ListRequestsQuery, current_user: UserSummary) -> RequestPage:
        limit = max(1, min(query.limit, self._max_limit))
        offset = max(0, query.offset)
        filters = RequestFilters(
            search=query.search,
            branch_id=query.branch_id,
            department=query.department,
            statuses=tuple(query.statuses),
            min_total=query.min_total,
            max_total=query.max_total,
            requester_id=query.requester_id,
            limit=limit,
            offset=offset,
        )

        requests = await self._repository.list_requests()
        found = apply_filters(visible_requests(requests, current_user), filters)
        return RequestPage(
            items=found[filters.offset:filters.offset + filters.limit],
            total=len(found),
            limit=filters.limit,
            offset=filters.offset,
        )


class GetRequestUseCase:
    def __init__(self, repository: PurchaseRequestRepository) -> None:
        self._repository = repository

    async def execute(self, request_id: str, current_user: UserSummary) -> PurchaseRequest:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise NotFound("Purchase request not found")
        if not is_visible(request, current_user):
            raise AuthorizationError("You are not allowed to view this request")
        return request


class DashboardUseCase:
    def __init__(self, repository: PurchaseRequestRepository, clock: Clock) -> None:
        self._repository = repository
        self._clock = clock

    async def execute(self, filters: RequestFilters, current_user: UserSummary) -> DashboardMetrics:
        requests = await self._repository.list_requests()
        scoped = apply_filters(visible_requests(requests, current_user), filters)
        return dashboard_metrics(scoped, current_user, self._clock())


class MonthlyReportUseCase:
    def __init__(
        self,
        repository: PurchaseRequestRepository,
        writer: ReportWriter,
        timeout: float = 30.0,
    ) -> None:
        self._repository = repository
        self._writer = writer
        self._timeout = timeout

    async def execute(self, branch_id: str, year: int, month: int, current_user: UserSummary) -> MonthlyReport:
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12")
        # The month window ends on the first day of the following month
        if not 1 <= year < 9999:
            raise ValidationError("Year must be between 1 and 9998")
        branch = await self._repository.get_branch(branch_id)
        if branch is None:
            raise NotFound("Branch not found")

        requests = visible_requests(await self._repository.list_requests(), current_user)
        summary = monthly_summary(requests, branch_id, year, month)
        month_label = datetime(year, month, 1).strftime("%B %Y")

        # Nothing to analyze, so the collaborator is not called
        if summary.request_count == 0:
            return MonthlyReport(branch_name=branch.name, month_label=month_label, summary=summary)

        analysis = await call_external(
            self._writer.write_monthly_report(summary.requests, branch.name, month_label),
            service="Monthly report",
            timeout=self._timeout,
        )
        return MonthlyReport(
            branch_name=branch.name,
            month_label=month_label,
            summary=summary,
            ai_analysis=analysis,
        )


class SupplierSuggestionUseCase:
    """Advisory only: asks the collaborator which branch suppliers fit the items."""

    def __init__(
        self,
        catalog: CatalogRepository,
        advisor: SupplierAdvisor,
        timeout: float = 30.0,
    ) -> None:
        self._catalog = catalog
        self._advisor = advisor
        self._timeout = timeout

    async def execute(self, query: SupplierSuggestionQuery, current_user: UserSummary) -> Sequence[SupplierSuggestion]:
        if not query.items:
            raise ValidationError("Add at least one item before asking for suggestions")

        suppliers = await self._catalog.list_suppliers(branch_id=query.branch_id)
        if not suppliers:
            return []

        suggestions = await call_external(
            self._advisor.suggest_suppliers(query.items, suppliers),
            service="Supplier suggestions",
            timeout=self._timeout,
        )
        return list(suggestions)
