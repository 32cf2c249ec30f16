"""
Invoice reconciliation rules

Everything here is pure: the application layer decides when the results
are previewed and when they are committed.
"""
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from app.catalog.domain.models import (
    UNCATEGORIZED,
    CatalogItem,
    SalesRepresentative,
    Supplier,
)
from app.invoices.domain.models import (
    ExtractedInvoiceItem,
    InternalPriceCheckItem,
    InvoiceAnalysis,
    PriceComparison,
)
from app.shared.application.locks import normalize_key
from app.shared.domain.errors import ExternalServiceError


def validate_analysis(analysis: InvoiceAnalysis) -> None:
    """Reject extraction output that cannot be reconciled."""
    extracted = analysis.extracted
    if not extracted.vendor_name.strip():
        raise ExternalServiceError("Invoice extraction returned no vendor name")
    if not extracted.invoice_number.strip():
        raise ExternalServiceError("Invoice extraction returned no invoice number")
    if extracted.total_amount < 0:
        raise ExternalServiceError("Invoice extraction returned a negative total")
    if not extracted.items:
        raise ExternalServiceError("Invoice extraction returned no line items")
    for item in extracted.items:
        if not item.item_name.strip():
            raise ExternalServiceError("Invoice extraction returned an unnamed line item")
        if item.price < 0:
            raise ExternalServiceError(f"Invoice line '{item.item_name}' has a negative price")


def catalog_keys(items: Sequence[ExtractedInvoiceItem]) -> List[str]:
    return sorted({normalize_key(item.item_name) for item in items})


def compare_price(item: ExtractedInvoiceItem, catalog_item: Optional[CatalogItem]) -> InternalPriceCheckItem:
    if catalog_item is None:
        return InternalPriceCheckItem(
            item_name=item.item_name,
            invoice_price=item.price,
            comparison=PriceComparison.NEW,
        )

    if item.price < catalog_item.estimated_cost:
        comparison = PriceComparison.LOWER
    elif item.price > catalog_item.estimated_cost:
        comparison = PriceComparison.HIGHER
    else:
        comparison = PriceComparison.SAME
    return InternalPriceCheckItem(
        item_name=item.item_name,
        invoice_price=item.price,
        comparison=comparison,
        catalog_price=catalog_item.estimated_cost,
    )


def check_internal_prices(
    items: Sequence[ExtractedInvoiceItem],
    catalog: Mapping[str, CatalogItem],
) -> Tuple[InternalPriceCheckItem, ...]:
    """One comparison per invoice line against the catalog as it is now."""
    return tuple(compare_price(item, catalog.get(normalize_key(item.item_name))) for item in items)


def augment(analysis: InvoiceAnalysis, catalog: Mapping[str, CatalogItem]) -> InvoiceAnalysis:
    return replace(
        analysis,
        internal_price_check=check_internal_prices(analysis.extracted.items, catalog),
    )


def reconcile_catalog(
    items: Sequence[ExtractedInvoiceItem],
    catalog: Mapping[str, CatalogItem],
) -> List[CatalogItem]:
    """Catalog entries that change once the invoice is confirmed.

    Known items only ever move down in price; unknown items are inserted
    as extracted. Lines are applied in order, so a repeated item sees the
    price written by the line before it.
    """
    working: Dict[str, CatalogItem] = dict(catalog)
    changed: Dict[str, CatalogItem] = {}

    for item in items:
        key = normalize_key(item.item_name)
        current = working.get(key)
        if current is None:
            updated = CatalogItem(
                name=item.item_name.strip(),
                category=item.category.strip() or UNCATEGORIZED,
                unit=item.unit.strip(),
                estimated_cost=item.price,
            )
        else:
            updated = current.ratchet_down(item.price)
            if updated is current:
                continue
        working[key] = updated
        changed[key] = updated

    return list(changed.values())


def reconcile_supplier(
    existing: Optional[Supplier],
    vendor_name: str,
    branch_id: Optional[str],
    representative: Optional[SalesRepresentative],
) -> Optional[Supplier]:
    """The supplier record after the invoice, or None when nothing changes."""
    if not vendor_name.strip():
        return None

    base = existing or Supplier(name=vendor_name.strip())
    updated = base.with_branch(branch_id).with_representative(representative)
    if existing is not None and updated == existing:
        return None
    return updated
