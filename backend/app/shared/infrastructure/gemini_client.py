"""Gemini REST client for the three AI collaborators.

One pooled httpx.AsyncClient serves invoice extraction, supplier
suggestions and monthly report analysis. Every failure (missing key, HTTP
error, transport error, malformed JSON) surfaces as ExternalServiceError;
there is no offline fallback.

Usage:
    from app.shared.infrastructure.gemini_client import get_gemini_client
    analysis = await get_gemini_client().analyze_invoice(data, "image/png", ["INV-1"])
"""
import base64
import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as SchemaError

from app.catalog.domain.models import Supplier, SupplierSuggestion
from app.insights.application.ports import SuggestedItem
from app.invoices.domain.models import InvoiceAnalysis
from app.invoices.presentation.schemas import InvoiceAnalysisSchema
from app.requests.domain.models import PurchaseRequest
from app.settings import ProcurementSettings, settings
from app.shared.domain.errors import ExternalServiceError

logger = logging.getLogger(__name__)

_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)

ITEM_CATEGORIES = (
    "F&B, Maintenance, Linens, Engineering, Housekeeping, Furniture, "
    "Plumbing & Heating, Electrical, Painting & Decoration"
)

INVOICE_PROMPT = """
Analyze this invoice for a hotel procurement system.
1. Extract the vendor name, invoice number, invoice date (YYYY-MM-DD), total amount and the list of items.
2. For each item extract its name, price and unit, and pick its category from: {categories}.
3. If the invoice shows a sales representative's name and contact number, extract them.
4. Check whether this invoice is a duplicate. Existing invoice numbers: {known_numbers}.
   It is a duplicate when its invoice number matches one of them.
5. For each item, estimate a reasonable market price range in SAR and compare the item's price to it.
   State whether the price is reasonable, high or low and include the range you used.
6. Give a one-sentence overall assessment of the invoice's pricing.
Return JSON shaped exactly like:
{{"extracted": {{"vendor_name": str, "invoice_number": str, "invoice_date": str, "total_amount": number,
  "items": [{{"item_name": str, "price": number, "unit": str, "category": str}}],
  "sales_representative": {{"name": str, "contact": str}} or null}},
 "duplicate_check": {{"is_duplicate": bool, "reason": str}},
 "price_check": {{"overall_assessment": str,
  "items": [{{"item_name": str, "price": number, "is_overpriced": bool, "market_price_comparison": str}}]}}}}
"""

SUPPLIER_PROMPT = """
As a procurement expert for a hotel chain, recommend the best suppliers for a purchase request.

Items in the request:
{items}

Suppliers available to the hotel's branch:
{suppliers}

Recommend up to 3 of the most suitable suppliers from this list only, based on item categories
and supplier specializations. Give each a brief justification.
Return a JSON array of {{"supplier_name": str, "justification": str}}.
"""

REPORT_PROMPT = """
Generate a concise monthly expense report analysis for {branch_name} for {month_label}.
From the purchase request data below, give key insights, spending trends and cost-saving
opportunities in 3-4 brief bullet points.

Data:
{data}
"""


class SuggestionSchema(BaseModel):
    supplier_name: str
    justification: str = ""


_suggestions_adapter = TypeAdapter(List[SuggestionSchema])


def _inline_document(document: bytes, mime_type: str) -> Dict[str, Any]:
    return {
        "inline_data": {
            "mime_type": mime_type,
            "data": base64.b64encode(document).decode("ascii"),
        }
    }


def _response_text(payload: Dict[str, Any]) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise ExternalServiceError("Gemini returned no candidates")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts)
    if not text.strip():
        raise ExternalServiceError("Gemini returned an empty response")
    return text


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExternalServiceError(f"Gemini returned invalid JSON: {exc.msg}") from exc


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 30.0,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=timeout, limits=_LIMITS)

    @classmethod
    def from_settings(cls, config: ProcurementSettings) -> "GeminiClient":
        return cls(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_base_url,
            timeout=config.ai_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _generate(self, parts: List[Dict[str, Any]], json_response: bool) -> str:
        if not self._api_key:
            raise ExternalServiceError("The AI service is not configured (GEMINI_API_KEY is missing)")

        body: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if json_response:
            body["generationConfig"] = {"responseMimeType": "application/json"}

        url = f"{self._base_url}/models/{self._model}:generateContent"
        try:
            resp = await self._http.post(url, headers={"x-goog-api-key": self._api_key}, json=body)
        except httpx.HTTPError as exc:
            logger.warning(f"Gemini request failed: {exc}")
            raise ExternalServiceError(f"The AI service could not be reached: {exc}") from exc

        if resp.status_code != 200:
            logger.warning(f"Gemini API {resp.status_code}: {resp.text[:200]}")
            raise ExternalServiceError(f"The AI service answered with HTTP {resp.status_code}")
        return _response_text(resp.json())

    async def analyze_invoice(
        self,
        document: bytes,
        mime_type: str,
        known_invoice_numbers: Sequence[str],
    ) -> InvoiceAnalysis:
        prompt = INVOICE_PROMPT.format(
            categories=ITEM_CATEGORIES,
            known_numbers=json.dumps(list(known_invoice_numbers)),
        )
        text = await self._generate([_inline_document(document, mime_type), {"text": prompt}], json_response=True)
        try:
            analysis = InvoiceAnalysisSchema.model_validate(_load_json(text)).to_domain()
        except SchemaError as exc:
            raise ExternalServiceError(f"Invoice extraction returned an unexpected shape: {exc.error_count()} error(s)") from exc
        # The internal check is always computed locally
        return replace(analysis, internal_price_check=())

    async def suggest_suppliers(
        self,
        items: Sequence[SuggestedItem],
        suppliers: Sequence[Supplier],
    ) -> List[SupplierSuggestion]:
        prompt = SUPPLIER_PROMPT.format(
            items=json.dumps(
                [{"name": i.name, "category": i.category, "quantity": i.quantity} for i in items],
                indent=2,
            ),
            suppliers=json.dumps(
                [{"name": s.name, "category": s.category, "notes": s.notes} for s in suppliers],
                indent=2,
            ),
        )
        text = await self._generate([{"text": prompt}], json_response=True)
        try:
            parsed = _suggestions_adapter.validate_python(_load_json(text))
        except SchemaError as exc:
            raise ExternalServiceError("Supplier suggestions returned an unexpected shape") from exc

        known = {s.name.strip().lower() for s in suppliers}
        return [
            SupplierSuggestion(supplier_name=s.supplier_name, justification=s.justification)
            for s in parsed
            if s.supplier_name.strip().lower() in known
        ][:3]

    async def write_monthly_report(
        self,
        requests: Sequence[PurchaseRequest],
        branch_name: str,
        month_label: str,
    ) -> str:
        data = [
            {
                "department": r.department,
                "total_cost": r.total_estimated_cost,
                "items": [
                    {"name": i.name, "cost": i.estimated_cost, "quantity": i.quantity} for i in r.items
                ],
            }
            for r in requests
        ]
        prompt = REPORT_PROMPT.format(
            branch_name=branch_name,
            month_label=month_label,
            data=json.dumps(data, indent=2),
        )
        return (await self._generate([{"text": prompt}], json_response=False)).strip()


_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    global _client
    if _client is None:
        _client = GeminiClient.from_settings(settings)
    return _client


async def close_gemini_client() -> None:
    """Shut down the shared client. Call from app shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
