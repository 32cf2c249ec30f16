import enum
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from app.catalog.domain.models import SalesRepresentative


class PriceComparison(str, enum.Enum):
    LOWER = "lower"
    HIGHER = "higher"
    SAME = "same"
    NEW = "new"


@dataclass(frozen=True)
class ExtractedInvoiceItem:
    item_name: str
    price: float
    unit: str = ""
    category: str = ""


@dataclass(frozen=True)
class ExtractedInvoice:
    vendor_name: str
    invoice_number: str
    invoice_date: str
    total_amount: float
    items: Sequence[ExtractedInvoiceItem]
    sales_representative: Optional[SalesRepresentative] = None


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    reason: str = ""


@dataclass(frozen=True)
class MarketPriceItem:
    item_name: str
    price: float
    is_overpriced: bool
    market_price_comparison: str = ""


@dataclass(frozen=True)
class MarketPriceCheck:
    overall_assessment: str = ""
    items: Sequence[MarketPriceItem] = ()


@dataclass(frozen=True)
class InternalPriceCheckItem:
    item_name: str
    invoice_price: float
    comparison: PriceComparison
    catalog_price: Optional[float] = None


@dataclass(frozen=True)
class InvoiceAnalysis:
    """What the extraction collaborator returned, plus the local price check.

    ``internal_price_check`` is empty until the reconciliation engine has
    compared the extracted lines against the catalog.
    """

    extracted: ExtractedInvoice
    duplicate_check: DuplicateCheck
    price_check: MarketPriceCheck
    internal_price_check: Tuple[InternalPriceCheckItem, ...] = ()


@dataclass(frozen=True)
class Invoice:
    id: str
    vendor_name: str
    invoice_number: str
    invoice_date: str
    total_amount: float
    file_data: str
    mime_type: str
    analysis: InvoiceAnalysis

    @classmethod
    def from_analysis(
        cls, invoice_id: str, analysis: InvoiceAnalysis, file_data: str, mime_type: str
    ) -> "Invoice":
        extracted = analysis.extracted
        return cls(
            id=invoice_id,
            vendor_name=extracted.vendor_name,
            invoice_number=extracted.invoice_number,
            invoice_date=extracted.invoice_date,
            total_amount=extracted.total_amount,
            file_data=file_data,
            mime_type=mime_type,
            analysis=analysis,
        )
