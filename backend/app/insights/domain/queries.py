"""
Read-side projections over purchase requests

Nothing in this module mutates a request. Visibility, filtering and the
dashboard numbers are all derived from the authoritative request set.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from app.identity.domain.models import UserRole, UserSummary
from app.requests.domain.models import PurchaseRequest, RequestFilters
from app.requests.domain.status import TERMINAL_STATUSES, HistoryAction, RequestStatus
from app.requests.domain.workflow import stage_role


@dataclass(frozen=True)
class OverpricedItem:
    request_id: str
    reference_number: Optional[int]
    item_name: str
    price: float
    market_price_comparison: str


@dataclass(frozen=True)
class DashboardMetrics:
    awaiting_my_action: int
    total_pending_spend: float
    completed_this_month: int
    overpriced_items: Tuple[OverpricedItem, ...] = ()


@dataclass(frozen=True)
class DepartmentSpend:
    department: str
    total: float
    count: int


@dataclass(frozen=True)
class MonthlySummary:
    branch_id: str
    year: int
    month: int
    requests: Tuple[PurchaseRequest, ...]
    total_spend: float
    request_count: int
    department_breakdown: Tuple[DepartmentSpend, ...]


def is_visible(request: PurchaseRequest, user: UserSummary) -> bool:
    if user.role in UserRole.UNRESTRICTED:
        return True
    in_branch = request.branch.id in user.branch_ids
    if user.role == UserRole.REQUESTER:
        return request.is_owned_by(user) or in_branch
    return in_branch


def visible_requests(requests: Iterable[PurchaseRequest], user: UserSummary) -> List[PurchaseRequest]:
    return [request for request in requests if is_visible(request, user)]


def _matches_search(request: PurchaseRequest, term: str) -> bool:
    term = term.lower()
    haystack = [request.id, request.requester.name]
    if request.reference_number is not None:
        haystack.append(str(request.reference_number))
    haystack.extend(item.name for item in request.items)
    return any(term in value.lower() for value in haystack)


def matches(request: PurchaseRequest, filters: RequestFilters) -> bool:
    if filters.search and filters.search.strip() and not _matches_search(request, filters.search.strip()):
        return False
    if filters.branch_id and request.branch.id != filters.branch_id:
        return False
    if filters.department and request.department != filters.department:
        return False
    if filters.statuses and request.status not in filters.statuses:
        return False
    total = request.total_estimated_cost
    if filters.min_total is not None and total < filters.min_total:
        return False
    if filters.max_total is not None and total > filters.max_total:
        return False
    if filters.requester_id and request.requester.id != filters.requester_id:
        return False
    return True


def apply_filters(requests: Iterable[PurchaseRequest], filters: RequestFilters) -> List[PurchaseRequest]:
    found = [request for request in requests if matches(request, filters)]
    found.sort(key=lambda request: request.created_at, reverse=True)
    return found


def awaits_action_from(request: PurchaseRequest, user: UserSummary) -> bool:
    return stage_role(request.status) == user.role


def completion_date(request: PurchaseRequest) -> Optional[datetime]:
    if request.status != RequestStatus.COMPLETED:
        return None
    for entry in reversed(request.approval_history):
        if entry.action == HistoryAction.BANK_ROUND_COMPLETED:
            return entry.timestamp
    return None


def month_window(year: int, month: int, tzinfo=timezone.utc) -> Tuple[datetime, datetime]:
    start = datetime(year, month, 1, tzinfo=tzinfo)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=tzinfo)
    else:
        end = datetime(year, month + 1, 1, tzinfo=tzinfo)
    return start, end


def completed_within(request: PurchaseRequest, start: datetime, end: datetime) -> bool:
    completed_at = completion_date(request)
    return completed_at is not None and start <= completed_at < end


def overpriced_items(requests: Iterable[PurchaseRequest]) -> List[OverpricedItem]:
    flagged = []
    for request in requests:
        if request.invoice is None:
            continue
        for item in request.invoice.analysis.price_check.items:
            if item.is_overpriced:
                flagged.append(
                    OverpricedItem(
                        request_id=request.id,
                        reference_number=request.reference_number,
                        item_name=item.item_name,
                        price=item.price,
                        market_price_comparison=item.market_price_comparison,
                    )
                )
    return flagged


def dashboard_metrics(
    requests: Sequence[PurchaseRequest],
    user: UserSummary,
    now: datetime,
) -> DashboardMetrics:
    start, end = month_window(now.year, now.month, tzinfo=now.tzinfo)
    return DashboardMetrics(
        awaiting_my_action=sum(1 for r in requests if awaits_action_from(r, user)),
        total_pending_spend=sum(
            r.total_estimated_cost for r in requests if r.status not in TERMINAL_STATUSES
        ),
        completed_this_month=sum(1 for r in requests if completed_within(r, start, end)),
        overpriced_items=tuple(overpriced_items(requests)),
    )


def monthly_summary(
    requests: Iterable[PurchaseRequest],
    branch_id: str,
    year: int,
    month: int,
) -> MonthlySummary:
    start, end = month_window(year, month)
    selected = tuple(
        r for r in requests if r.branch.id == branch_id and completed_within(r, start, end)
    )

    by_department = {}
    for request in selected:
        total, count = by_department.get(request.department, (0.0, 0))
        by_department[request.department] = (total + request.total_estimated_cost, count + 1)
    breakdown = sorted(
        (DepartmentSpend(department=d, total=t, count=c) for d, (t, c) in by_department.items()),
        key=lambda spend: spend.total,
        reverse=True,
    )

    return MonthlySummary(
        branch_id=branch_id,
        year=year,
        month=month,
        requests=selected,
        total_spend=sum(r.total_estimated_cost for r in selected),
        request_count=len(selected),
        department_breakdown=tuple(breakdown),
    )
