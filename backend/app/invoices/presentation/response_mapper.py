from typing import Any, Dict

from app.invoices.domain.models import Invoice, InvoiceAnalysis


def invoice_analysis_to_response(analysis: InvoiceAnalysis) -> Dict[str, Any]:
    extracted = analysis.extracted
    rep = extracted.sales_representative
    return {
        "extracted": {
            "vendor_name": extracted.vendor_name,
            "invoice_number": extracted.invoice_number,
            "invoice_date": extracted.invoice_date,
            "total_amount": extracted.total_amount,
            "items": [
                {
                    "item_name": item.item_name,
                    "price": item.price,
                    "unit": item.unit,
                    "category": item.category,
                }
                for item in extracted.items
            ],
            "sales_representative": {"name": rep.name, "contact": rep.contact} if rep else None,
        },
        "duplicate_check": {
            "is_duplicate": analysis.duplicate_check.is_duplicate,
            "reason": analysis.duplicate_check.reason,
        },
        "price_check": {
            "overall_assessment": analysis.price_check.overall_assessment,
            "items": [
                {
                    "item_name": item.item_name,
                    "price": item.price,
                    "is_overpriced": item.is_overpriced,
                    "market_price_comparison": item.market_price_comparison,
                }
                for item in analysis.price_check.items
            ],
        },
        "internal_price_check": [
            {
                "item_name": item.item_name,
                "invoice_price": item.invoice_price,
                "comparison": item.comparison.value,
                "catalog_price": item.catalog_price,
            }
            for item in analysis.internal_price_check
        ],
    }


def invoice_to_response(invoice: Invoice, include_file: bool = True) -> Dict[str, Any]:
    response = {
        "id": invoice.id,
        "vendor_name": invoice.vendor_name,
        "invoice_number": invoice.invoice_number,
        "invoice_date": invoice.invoice_date,
        "total_amount": invoice.total_amount,
        "mime_type": invoice.mime_type,
        "analysis": invoice_analysis_to_response(invoice.analysis),
    }
    if include_file:
        response["file_data"] = invoice.file_data
    return response
