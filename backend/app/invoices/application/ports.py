from typing import Protocol, Sequence

from app.invoices.domain.models import InvoiceAnalysis


class InvoiceExtractor(Protocol):
    async def analyze_invoice(
        self,
        document: bytes,
        mime_type: str,
        known_invoice_numbers: Sequence[str],
    ) -> InvoiceAnalysis:
        """Extract fields, flag duplicates and compare against market prices.

        The returned analysis has no internal price check; that part is
        always computed locally against the catalog.
        """
        ...
