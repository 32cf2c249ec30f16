from datetime import datetime, timezone

import pytest

from app.catalog.domain.models import SupplierSuggestion
from app.identity.domain.models import UserRole
from app.insights.application.use_cases import (
    DashboardUseCase,
    GetRequestUseCase,
    ListRequestsQuery,
    ListRequestsUseCase,
    MonthlyReportUseCase,
    SuggestionItem,
    SupplierSuggestionQuery,
    SupplierSuggestionUseCase,
)
from app.insights.domain.queries import completion_date, is_visible, month_window
from app.invoices.domain.models import Invoice
from app.requests.domain.models import RequestFilters
from app.requests.domain.status import RequestStatus
from app.shared.domain.errors import (
    AuthorizationError,
    ExternalServiceError,
    NotFound,
    ValidationError,
)
from fakes import (
    OTHER_BRANCH,
    FakeCatalogRepository,
    FakePurchaseRequestRepository,
    FakeReportWriter,
    FakeSupplierAdvisor,
    FixedClock,
    Supplier,
    make_analysis,
    make_engine,
    make_item,
    make_request,
    make_user,
    run,
)

REQUESTER = make_user(UserRole.REQUESTER)
HM = make_user(UserRole.HOTEL_MANAGER)
AUDITOR = make_user(UserRole.AUDITOR, branch_ids=())


def completed_request(request_id, completed_at, department="Housekeeping", branch=None, cost=10.0, overpriced=()):
    clock = FixedClock(completed_at)
    engine = make_engine(clock=clock)
    kwargs = {"branch": branch} if branch is not None else {}
    request = make_request(
        requester=REQUESTER,
        request_id=request_id,
        department=department,
        items=[make_item(quantity=10, estimated_cost=cost)],
        **kwargs,
    )
    engine.submit(request, REQUESTER, reference_number=1000 + len(request_id))
    engine.approve(request, HM)
    engine.mark_as_purchased(request, make_user(UserRole.PURCHASING_REP))
    analysis = make_analysis(invoice_number=f"INV-{request_id}", overpriced=overpriced)
    engine.process_invoice(
        request,
        make_user(UserRole.ACCOUNTANT),
        Invoice.from_analysis(f"inv-{request_id}", analysis, "data:application/pdf;base64,AA==", "application/pdf"),
    )
    engine.approve(request, make_user(UserRole.ACCOUNTING_MANAGER))
    engine.complete_bank_round(request, make_user(UserRole.BANK_ROUNDS_OFFICER))
    return request


def pending_request(request_id, created_at, branch=None, requester=REQUESTER):
    kwargs = {"branch": branch} if branch is not None else {}
    request = make_request(requester=requester, request_id=request_id, created_at=created_at, **kwargs)
    make_engine().submit(request, requester, reference_number=2000 + len(request_id))
    return request


def test_visibility_by_role_and_branch():
    own_elsewhere = make_request(requester=REQUESTER, branch=OTHER_BRANCH)
    in_branch = make_request(requester=make_user(UserRole.REQUESTER, user_id="colleague"))

    assert is_visible(own_elsewhere, REQUESTER)
    assert is_visible(in_branch, REQUESTER)
    assert is_visible(in_branch, HM)
    assert not is_visible(own_elsewhere, HM)
    assert is_visible(own_elsewhere, AUDITOR)
    assert is_visible(own_elsewhere, make_user(UserRole.ADMIN, branch_ids=()))


def test_list_requests_filters_sorts_and_pages():
    repo = FakePurchaseRequestRepository()
    for day in range(1, 6):
        repo.seed(pending_request(f"req-{day}", datetime(2026, 3, day, tzinfo=timezone.utc)))
    repo.seed(pending_request("req-far", datetime(2026, 3, 9, tzinfo=timezone.utc), branch=OTHER_BRANCH))
    use_case = ListRequestsUseCase(repo, max_limit=3)

    page = run(use_case.execute(ListRequestsQuery(limit=50, offset=1), HM))

    assert page.total == 5
    assert page.limit == 3
    assert [r.id for r in page.items] == ["req-4", "req-3", "req-2"]


def test_list_requests_clamps_paging():
    repo = FakePurchaseRequestRepository()
    repo.seed(pending_request("req-1", datetime(2026, 3, 1, tzinfo=timezone.utc)))
    repo.seed(pending_request("req-2", datetime(2026, 3, 2, tzinfo=timezone.utc)))

    page = run(ListRequestsUseCase(repo).execute(ListRequestsQuery(limit=0, offset=-5), HM))

    assert (page.limit, page.offset) == (1, 0)
    assert [r.id for r in page.items] == ["req-2"]


def test_list_requests_search_and_status_filter():
    repo = FakePurchaseRequestRepository()
    repo.seed(pending_request("req-1", datetime(2026, 3, 1, tzinfo=timezone.utc)))
    repo.seed(make_request(requester=REQUESTER, request_id="req-draft", items=[make_item("Bleach")]))
    use_case = ListRequestsUseCase(repo)

    by_status = run(use_case.execute(ListRequestsQuery(statuses=(RequestStatus.DRAFT,)), REQUESTER))
    by_search = run(use_case.execute(ListRequestsQuery(search="bleach"), REQUESTER))
    by_total = run(use_case.execute(ListRequestsQuery(min_total=101.0), REQUESTER))

    assert [r.id for r in by_status.items] == ["req-draft"]
    assert [r.id for r in by_search.items] == ["req-draft"]
    assert by_total.total == 0


def test_get_request_checks_visibility():
    repo = FakePurchaseRequestRepository()
    repo.seed(pending_request("req-far", datetime(2026, 3, 9, tzinfo=timezone.utc), branch=OTHER_BRANCH))
    use_case = GetRequestUseCase(repo)

    with pytest.raises(AuthorizationError):
        run(use_case.execute("req-far", HM))
    with pytest.raises(NotFound):
        run(use_case.execute("missing", HM))
    assert run(use_case.execute("req-far", AUDITOR)).id == "req-far"


def test_dashboard_metrics():
    repo = FakePurchaseRequestRepository()
    repo.seed(pending_request("req-1", datetime(2026, 3, 1, tzinfo=timezone.utc)))
    repo.seed(pending_request("req-2", datetime(2026, 3, 2, tzinfo=timezone.utc)))
    repo.seed(completed_request("req-done", datetime(2026, 3, 5, tzinfo=timezone.utc), overpriced=("Mop Heads",)))
    repo.seed(completed_request("req-old", datetime(2026, 2, 20, tzinfo=timezone.utc)))
    use_case = DashboardUseCase(repo, clock=FixedClock(datetime(2026, 3, 10, tzinfo=timezone.utc)))

    metrics = run(use_case.execute(RequestFilters(), HM))

    assert metrics.awaiting_my_action == 2
    assert metrics.total_pending_spend == 200.0
    assert metrics.completed_this_month == 1
    assert [(item.request_id, item.item_name) for item in metrics.overpriced_items] == [("req-done", "Mop Heads")]


def test_completion_date_comes_from_bank_round_entry():
    completed_at = datetime(2026, 3, 31, 23, 59, tzinfo=timezone.utc)
    request = completed_request("req-1", completed_at)

    assert completion_date(request) == completed_at
    assert completion_date(pending_request("req-2", completed_at)) is None


def test_month_window_wraps_december():
    start, end = month_window(2025, 12)

    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_monthly_report_groups_completed_requests_by_department():
    repo = FakePurchaseRequestRepository()
    repo.seed(completed_request("req-a", datetime(2026, 3, 2, tzinfo=timezone.utc), cost=10.0))
    repo.seed(completed_request("req-b", datetime(2026, 3, 20, tzinfo=timezone.utc), department="Kitchen", cost=30.0))
    repo.seed(completed_request("req-c", datetime(2026, 3, 21, tzinfo=timezone.utc), cost=5.0))
    repo.seed(completed_request("req-d", datetime(2026, 4, 1, tzinfo=timezone.utc)))
    repo.seed(completed_request("req-e", datetime(2026, 3, 3, tzinfo=timezone.utc), branch=OTHER_BRANCH))
    writer = FakeReportWriter()

    report = run(MonthlyReportUseCase(repo, writer).execute("b-1", 2026, 3, AUDITOR))

    assert report.branch_name == "Riyadh Grand"
    assert report.month_label == "March 2026"
    assert report.summary.request_count == 3
    assert report.summary.total_spend == 450.0
    assert [(d.department, d.total, d.count) for d in report.summary.department_breakdown] == [
        ("Kitchen", 300.0, 1),
        ("Housekeeping", 150.0, 2),
    ]
    assert report.ai_analysis == "- Spend is steady"
    assert writer.calls[0][1:] == ("Riyadh Grand", "March 2026")


def test_empty_month_skips_the_writer():
    repo = FakePurchaseRequestRepository()
    writer = FakeReportWriter()

    report = run(MonthlyReportUseCase(repo, writer).execute("b-1", 2026, 3, AUDITOR))

    assert report.summary.request_count == 0
    assert report.ai_analysis == ""
    assert writer.calls == []


def test_monthly_report_validates_input():
    repo = FakePurchaseRequestRepository()
    use_case = MonthlyReportUseCase(repo, FakeReportWriter())

    with pytest.raises(ValidationError):
        run(use_case.execute("b-1", 2026, 13, AUDITOR))
    with pytest.raises(NotFound):
        run(use_case.execute("nowhere", 2026, 3, AUDITOR))


@pytest.mark.parametrize("year, month", [(0, 3), (-1, 1), (9999, 12), (10000, 1)])
def test_monthly_report_rejects_out_of_range_year(year, month):
    use_case = MonthlyReportUseCase(FakePurchaseRequestRepository(), FakeReportWriter())

    with pytest.raises(ValidationError):
        run(use_case.execute("b-1", year, month, AUDITOR))


def test_supplier_suggestions():
    cleanco = Supplier(name="CleanCo", category="Cleaning", branch_ids=("b-1",))
    catalog = FakeCatalogRepository(suppliers=[cleanco, Supplier(name="FarAway", branch_ids=("b-2",))])
    advisor = FakeSupplierAdvisor([SupplierSuggestion("CleanCo", "Supplies mops")])
    use_case = SupplierSuggestionUseCase(catalog, advisor)
    query = SupplierSuggestionQuery(branch_id="b-1", items=(SuggestionItem("Mop Heads", "Housekeeping", 10),))

    suggestions = run(use_case.execute(query, REQUESTER))

    assert suggestions == [SupplierSuggestion("CleanCo", "Supplies mops")]
    assert advisor.calls[0][1] == (cleanco,)


def test_supplier_suggestions_edge_cases():
    advisor = FakeSupplierAdvisor([SupplierSuggestion("CleanCo", "Supplies mops")])
    use_case = SupplierSuggestionUseCase(FakeCatalogRepository(), advisor)

    with pytest.raises(ValidationError):
        run(use_case.execute(SupplierSuggestionQuery(branch_id="b-1"), REQUESTER))

    query = SupplierSuggestionQuery(branch_id="b-1", items=(SuggestionItem("Mop Heads", "", 1),))
    assert run(use_case.execute(query, REQUESTER)) == []
    assert advisor.calls == []


def test_supplier_suggestions_surface_advisor_failure():
    class BrokenAdvisor:
        async def suggest_suppliers(self, items, suppliers):
            raise RuntimeError("connection reset")

    catalog = FakeCatalogRepository(suppliers=[Supplier(name="CleanCo", branch_ids=("b-1",))])
    use_case = SupplierSuggestionUseCase(catalog, BrokenAdvisor())
    query = SupplierSuggestionQuery(branch_id="b-1", items=(SuggestionItem("Mop Heads", "", 1),))

    with pytest.raises(ExternalServiceError):
        run(use_case.execute(query, REQUESTER))
