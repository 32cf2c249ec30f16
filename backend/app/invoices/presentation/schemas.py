"""
Wire schemas for invoice analyses

Used in three places: parsing the extraction collaborator's JSON, reading
the analysis a client posts back on confirm, and rehydrating the analysis
stored with an invoice.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from app.catalog.domain.models import SalesRepresentative
from app.invoices.domain.models import (
    DuplicateCheck,
    ExtractedInvoice,
    ExtractedInvoiceItem,
    InternalPriceCheckItem,
    InvoiceAnalysis,
    MarketPriceCheck,
    MarketPriceItem,
    PriceComparison,
)


class SalesRepresentativeSchema(BaseModel):
    name: str = ""
    contact: str = ""


class ExtractedItemSchema(BaseModel):
    item_name: str
    price: float
    unit: str = ""
    category: str = ""


class ExtractedInvoiceSchema(BaseModel):
    vendor_name: str
    invoice_number: str
    invoice_date: str = ""
    total_amount: float
    items: List[ExtractedItemSchema] = Field(default_factory=list)
    sales_representative: Optional[SalesRepresentativeSchema] = None


class DuplicateCheckSchema(BaseModel):
    is_duplicate: bool = False
    reason: str = ""


class MarketPriceItemSchema(BaseModel):
    item_name: str
    price: float
    is_overpriced: bool = False
    market_price_comparison: str = ""


class MarketPriceCheckSchema(BaseModel):
    overall_assessment: str = ""
    items: List[MarketPriceItemSchema] = Field(default_factory=list)


class InternalPriceCheckItemSchema(BaseModel):
    item_name: str
    invoice_price: float
    comparison: PriceComparison
    catalog_price: Optional[float] = None


class InvoiceAnalysisSchema(BaseModel):
    extracted: ExtractedInvoiceSchema
    duplicate_check: DuplicateCheckSchema = Field(default_factory=DuplicateCheckSchema)
    price_check: MarketPriceCheckSchema = Field(default_factory=MarketPriceCheckSchema)
    internal_price_check: List[InternalPriceCheckItemSchema] = Field(default_factory=list)

    def to_domain(self) -> InvoiceAnalysis:
        rep = self.extracted.sales_representative
        return InvoiceAnalysis(
            extracted=ExtractedInvoice(
                vendor_name=self.extracted.vendor_name,
                invoice_number=self.extracted.invoice_number,
                invoice_date=self.extracted.invoice_date,
                total_amount=self.extracted.total_amount,
                items=tuple(ExtractedInvoiceItem(**item.model_dump()) for item in self.extracted.items),
                sales_representative=SalesRepresentative(**rep.model_dump()) if rep else None,
            ),
            duplicate_check=DuplicateCheck(**self.duplicate_check.model_dump()),
            price_check=MarketPriceCheck(
                overall_assessment=self.price_check.overall_assessment,
                items=tuple(MarketPriceItem(**item.model_dump()) for item in self.price_check.items),
            ),
            internal_price_check=tuple(
                InternalPriceCheckItem(**item.model_dump()) for item in self.internal_price_check
            ),
        )
