from typing import Protocol, Sequence

from app.catalog.domain.models import Supplier, SupplierSuggestion
from app.requests.domain.models import PurchaseRequest


class SuggestedItem(Protocol):
    name: str
    category: str
    quantity: int


class SupplierAdvisor(Protocol):
    async def suggest_suppliers(
        self,
        items: Sequence[SuggestedItem],
        suppliers: Sequence[Supplier],
    ) -> Sequence[SupplierSuggestion]:
        ...


class ReportWriter(Protocol):
    async def write_monthly_report(
        self,
        requests: Sequence[PurchaseRequest],
        branch_name: str,
        month_label: str,
    ) -> str:
        ...
