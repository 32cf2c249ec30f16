"""
PostgreSQL Invoice Routes
Two-step invoice processing: analyze (no changes stored), then confirm
"""
from fastapi import APIRouter, HTTPException, Depends, File, UploadFile
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import base64

from database import get_postgres_session, User
from app.catalog.infrastructure.sqlalchemy_repository import SqlAlchemyCatalogRepository
from app.invoices.application.use_cases import (
    ConfirmInvoiceCommand,
    ConfirmInvoiceUseCase,
    PreviewInvoiceCommand,
    PreviewInvoiceUseCase,
)
from app.invoices.presentation.response_mapper import invoice_analysis_to_response
from app.invoices.presentation.schemas import InvoiceAnalysisSchema
from app.requests.presentation.response_mapper import purchase_request_to_response
from app.settings import settings
from app.shared.application.locks import KeyedLocks
from app.shared.domain.errors import DomainError
from app.shared.infrastructure.gemini_client import get_gemini_client
from routes.pg_auth_routes import get_current_user_pg, to_user_summary
from routes.pg_errors import to_http_exception
from routes.pg_requests_routes import build_repository, build_workflow, new_id

# Create router
pg_invoices_router = APIRouter(prefix="/api/pg", tags=["PostgreSQL Invoices"])

# Serializes catalog and supplier upserts across concurrent confirmations
invoice_locks = KeyedLocks()

ALLOWED_INVOICE_TYPES = {"application/pdf", "image/png", "image/jpeg", "image/webp"}
MAX_INVOICE_BYTES = 10 * 1024 * 1024


# ==================== PYDANTIC MODELS ====================

class InvoiceConfirmData(BaseModel):
    analysis: InvoiceAnalysisSchema
    file_data: str
    mime_type: str
    expected_version: Optional[int] = None


# ==================== INVOICE ROUTES ====================

@pg_invoices_router.post("/requests/{request_id}/invoice/analyze")
async def analyze_invoice(
    request_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Extract and check an invoice; nothing is stored until it is confirmed"""
    mime_type = file.content_type or ""
    if mime_type not in ALLOWED_INVOICE_TYPES:
        raise HTTPException(status_code=400, detail="Invoice must be a PDF or an image")
    content = await file.read()
    if len(content) > MAX_INVOICE_BYTES:
        raise HTTPException(status_code=400, detail="File is too large (max 10MB)")

    use_case = PreviewInvoiceUseCase(
        requests=build_repository(session),
        catalog=SqlAlchemyCatalogRepository(session),
        extractor=get_gemini_client(),
        workflow=build_workflow(),
        timeout=settings.ai_timeout_seconds,
    )
    command = PreviewInvoiceCommand(request_id=request_id, document=content, mime_type=mime_type)
    try:
        preview = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return {
        "request_id": preview.request_id,
        "expected_version": preview.request_version,
        "analysis": invoice_analysis_to_response(preview.analysis),
        "file_data": f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}",
        "mime_type": mime_type,
    }


@pg_invoices_router.post("/requests/{request_id}/invoice/confirm")
async def confirm_invoice(
    request_id: str,
    confirm_data: InvoiceConfirmData,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Store the invoice, reconcile catalog and supplier, advance the request"""
    use_case = ConfirmInvoiceUseCase(
        requests=build_repository(session),
        catalog=SqlAlchemyCatalogRepository(session),
        workflow=build_workflow(),
        id_generator=new_id,
        locks=invoice_locks,
    )
    command = ConfirmInvoiceCommand(
        request_id=request_id,
        analysis=confirm_data.analysis.to_domain(),
        file_data=confirm_data.file_data,
        mime_type=confirm_data.mime_type,
        expected_version=confirm_data.expected_version,
    )
    try:
        request = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return purchase_request_to_response(request)
