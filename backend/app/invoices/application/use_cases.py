import logging
from dataclasses import dataclass
from typing import Callable, Optional

from app.catalog.application.ports import CatalogRepository
from app.identity.domain.models import UserSummary
from app.invoices.application.ports import InvoiceExtractor
from app.invoices.domain.models import Invoice, InvoiceAnalysis
from app.invoices.domain.reconciliation import (
    augment,
    catalog_keys,
    reconcile_catalog,
    reconcile_supplier,
    validate_analysis,
)
from app.requests.application.ports import PurchaseRequestRepository
from app.requests.domain.models import PurchaseRequest
from app.requests.domain.workflow import WorkflowEngine
from app.shared.application.external import call_external
from app.shared.application.locks import KeyedLocks, normalize_key
from app.shared.domain.errors import (
    ConflictError,
    ExternalServiceError,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

IdGenerator = Callable[[], str]


@dataclass(frozen=True)
class PreviewInvoiceCommand:
    request_id: str
    document: bytes
    mime_type: str


@dataclass(frozen=True)
class InvoicePreview:
    request_id: str
    request_version: int
    analysis: InvoiceAnalysis


@dataclass(frozen=True)
class ConfirmInvoiceCommand:
    request_id: str
    analysis: InvoiceAnalysis
    file_data: str
    mime_type: str
    expected_version: Optional[int] = None


async def _load_request(
    repository: PurchaseRequestRepository,
    request_id: str,
    expected_version: Optional[int] = None,
) -> PurchaseRequest:
    request = await repository.get_request(request_id)
    if request is None:
        raise NotFound("Purchase request not found")
    if expected_version is not None and expected_version != request.version:
        raise ConflictError("The request was changed after the invoice preview, analyze it again")
    return request


class PreviewInvoiceUseCase:
    """Extract and check an invoice without touching any stored state."""

    def __init__(
        self,
        requests: PurchaseRequestRepository,
        catalog: CatalogRepository,
        extractor: InvoiceExtractor,
        workflow: WorkflowEngine,
        timeout: float = 30.0,
    ) -> None:
        self._requests = requests
        self._catalog = catalog
        self._extractor = extractor
        self._workflow = workflow
        self._timeout = timeout

    async def execute(self, command: PreviewInvoiceCommand, current_user: UserSummary) -> InvoicePreview:
        if not command.document:
            raise ValidationError("Select an invoice file to analyze")

        request = await _load_request(self._requests, command.request_id)
        self._workflow.ensure_can_process_invoice(request, current_user)

        known_numbers = await self._requests.list_invoice_numbers(request.branch.id)
        analysis = await call_external(
            self._extractor.analyze_invoice(command.document, command.mime_type, known_numbers),
            service="Invoice extraction",
            timeout=self._timeout,
        )
        validate_analysis(analysis)

        catalog = await self._catalog.get_catalog_items(catalog_keys(analysis.extracted.items))
        return InvoicePreview(
            request_id=request.id,
            request_version=request.version,
            analysis=augment(analysis, catalog),
        )


class ConfirmInvoiceUseCase:
    """Apply a previewed invoice: catalog, supplier, invoice and transition as one unit.

    The catalog and request repositories share one session, so the single
    commit at the end covers all of it.
    """

    def __init__(
        self,
        requests: PurchaseRequestRepository,
        catalog: CatalogRepository,
        workflow: WorkflowEngine,
        id_generator: IdGenerator,
        locks: KeyedLocks,
    ) -> None:
        self._requests = requests
        self._catalog = catalog
        self._workflow = workflow
        self._id_generator = id_generator
        self._locks = locks

    async def execute(self, command: ConfirmInvoiceCommand, current_user: UserSummary) -> PurchaseRequest:
        try:
            validate_analysis(command.analysis)
        except ExternalServiceError as exc:
            raise ValidationError(exc.message)
        if not command.file_data:
            raise ValidationError("The invoice file is required")

        request = await _load_request(self._requests, command.request_id, command.expected_version)
        self._workflow.ensure_can_process_invoice(request, current_user)

        extracted = command.analysis.extracted
        item_keys = catalog_keys(extracted.items)
        supplier_key = normalize_key(extracted.vendor_name)
        lock_keys = [f"catalog:{key}" for key in item_keys] + [f"supplier:{supplier_key}"]

        async with self._locks.hold(lock_keys):
            catalog = await self._catalog.get_catalog_items(item_keys, for_update=True)
            # Recomputed against the catalog as it is now, not as it was at preview
            analysis = augment(command.analysis, catalog)
            catalog_changes = reconcile_catalog(extracted.items, catalog)

            existing_supplier = await self._catalog.get_supplier(supplier_key, for_update=True)
            supplier = reconcile_supplier(
                existing_supplier,
                extracted.vendor_name,
                request.branch.id,
                extracted.sales_representative,
            )

            invoice = Invoice.from_analysis(
                invoice_id=self._id_generator(),
                analysis=analysis,
                file_data=command.file_data,
                mime_type=command.mime_type,
            )
            self._workflow.process_invoice(request, current_user, invoice)

            for item in catalog_changes:
                await self._catalog.save_catalog_item(item)
            if supplier is not None:
                await self._catalog.save_supplier(supplier)
            await self._requests.save_request(request)
            await self._requests.commit()

        logger.info(
            f"Invoice {invoice.invoice_number} committed for request {request.id}: "
            f"{len(catalog_changes)} catalog change(s), supplier "
            f"{'updated' if supplier is not None else 'unchanged'}"
        )
        return request
