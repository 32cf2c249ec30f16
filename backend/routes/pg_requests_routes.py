"""
PostgreSQL Purchase Requests Routes
Create, edit, list and move purchase requests through the approval workflow
"""
from fastapi import APIRouter, HTTPException, Depends, File, Query, UploadFile
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
import base64
import uuid

from database import get_postgres_session, User
from app.insights.application.use_cases import (
    GetRequestUseCase,
    ListRequestsQuery,
    ListRequestsUseCase,
)
from app.requests.application.use_cases import (
    AddAttachmentCommand,
    AddAttachmentUseCase,
    ApproveRequestUseCase,
    CompleteBankRoundUseCase,
    CreatePurchaseRequestCommand,
    CreatePurchaseRequestUseCase,
    EditDraftCommand,
    EditDraftRequestUseCase,
    ItemInput,
    MarkAsPurchasedUseCase,
    RejectRequestUseCase,
    RemoveAttachmentUseCase,
    RequestActionCommand,
    ResubmitRequestUseCase,
    ReturnForModificationUseCase,
)
from app.requests.domain.status import RequestStatus
from app.requests.domain.workflow import WorkflowEngine
from app.requests.infrastructure.sqlalchemy_repository import (
    SqlAlchemyPurchaseRequestRepository,
)
from app.requests.presentation.response_mapper import purchase_request_to_response
from app.settings import settings
from app.shared.domain.errors import DomainError
from routes.pg_auth_routes import get_current_user_pg, to_user_summary
from routes.pg_errors import to_http_exception

# Create router
pg_requests_router = APIRouter(prefix="/api/pg", tags=["PostgreSQL Purchase Requests"])

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


# ==================== PYDANTIC MODELS ====================

class PurchaseItemCreate(BaseModel):
    name: str
    quantity: int
    unit: str = ""
    estimated_cost: float = 0
    category: str = ""
    justification: str = ""


class PurchaseRequestCreate(BaseModel):
    items: List[PurchaseItemCreate]
    branch_id: str
    department: str
    submit: bool = True


class PurchaseRequestEdit(BaseModel):
    items: List[PurchaseItemCreate]
    branch_id: str
    department: str
    resubmit: bool = False
    expected_version: Optional[int] = None


class RequestActionData(BaseModel):
    reason: Optional[str] = None
    expected_version: Optional[int] = None


# ==================== HELPER FUNCTIONS ====================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_workflow() -> WorkflowEngine:
    return WorkflowEngine(
        clock=utcnow,
        pm_approval_threshold=settings.pm_approval_threshold,
        projects_department=settings.projects_department,
    )


def new_id() -> str:
    return str(uuid.uuid4())


def to_item_inputs(items: List[PurchaseItemCreate]) -> List[ItemInput]:
    return [
        ItemInput(
            name=item.name,
            quantity=item.quantity,
            unit=item.unit,
            estimated_cost=item.estimated_cost,
            category=item.category,
            justification=item.justification,
        )
        for item in items
    ]


def build_repository(session: AsyncSession) -> SqlAlchemyPurchaseRequestRepository:
    return SqlAlchemyPurchaseRequestRepository(session, settings.reference_number_start)


async def run_action(use_case_class, request_id: str, data: Optional[RequestActionData], current_user: User, session: AsyncSession):
    data = data or RequestActionData()
    workflow = build_workflow()
    use_case = use_case_class(build_repository(session), workflow)
    user = to_user_summary(current_user)
    command = RequestActionCommand(
        request_id=request_id,
        reason=data.reason,
        expected_version=data.expected_version,
    )
    try:
        request = await use_case.execute(command, user)
    except DomainError as exc:
        raise to_http_exception(exc)

    return purchase_request_to_response(request, can_act=workflow.can_act(request, user))


# ==================== PURCHASE REQUESTS ROUTES ====================

@pg_requests_router.post("/requests")
async def create_purchase_request(
    request_data: PurchaseRequestCreate,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Create a purchase request; submitted right away unless submit is false"""
    use_case = CreatePurchaseRequestUseCase(
        repository=build_repository(session),
        workflow=build_workflow(),
        id_generator=new_id,
        clock=utcnow,
        departments=settings.departments,
    )
    command = CreatePurchaseRequestCommand(
        items=to_item_inputs(request_data.items),
        branch_id=request_data.branch_id,
        department=request_data.department,
        submit=request_data.submit,
    )

    try:
        request = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return purchase_request_to_response(request)


@pg_requests_router.get("/requests")
async def get_purchase_requests(
    search: Optional[str] = None,
    branch_id: Optional[str] = None,
    department: Optional[str] = None,
    status: Optional[List[str]] = Query(default=None),
    min_total: Optional[float] = None,
    max_total: Optional[float] = None,
    requester_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """List the requests the caller may see, newest first"""
    try:
        statuses = tuple(RequestStatus(value) for value in status or [])
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown status filter")

    user = to_user_summary(current_user)
    workflow = build_workflow()
    use_case = ListRequestsUseCase(build_repository(session), max_limit=settings.max_list_limit)
    query = ListRequestsQuery(
        search=search,
        branch_id=branch_id,
        department=department,
        statuses=statuses,
        min_total=min_total,
        max_total=max_total,
        requester_id=requester_id,
        limit=limit,
        offset=offset,
    )
    page = await use_case.execute(query, user)

    return {
        "items": [
            purchase_request_to_response(req, include_files=False, can_act=workflow.can_act(req, user))
            for req in page.items
        ],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
    }


@pg_requests_router.get("/requests/{request_id}")
async def get_purchase_request(
    request_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    user = to_user_summary(current_user)
    use_case = GetRequestUseCase(build_repository(session))
    try:
        request = await use_case.execute(request_id, user)
    except DomainError as exc:
        raise to_http_exception(exc)

    return purchase_request_to_response(request, can_act=build_workflow().can_act(request, user))


@pg_requests_router.put("/requests/{request_id}")
async def edit_purchase_request(
    request_id: str,
    edit_data: PurchaseRequestEdit,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Edit a draft; optionally resubmit it in the same call"""
    use_case = EditDraftRequestUseCase(
        repository=build_repository(session),
        workflow=build_workflow(),
        id_generator=new_id,
        departments=settings.departments,
    )
    command = EditDraftCommand(
        request_id=request_id,
        items=to_item_inputs(edit_data.items),
        branch_id=edit_data.branch_id,
        department=edit_data.department,
        resubmit=edit_data.resubmit,
        expected_version=edit_data.expected_version,
    )
    try:
        request = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return purchase_request_to_response(request)


@pg_requests_router.post("/requests/{request_id}/resubmit")
async def resubmit_purchase_request(
    request_id: str,
    action_data: Optional[RequestActionData] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    return await run_action(ResubmitRequestUseCase, request_id, action_data, current_user, session)


@pg_requests_router.post("/requests/{request_id}/approve")
async def approve_purchase_request(
    request_id: str,
    action_data: Optional[RequestActionData] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Approve at the current stage; reason is kept as an optional comment"""
    return await run_action(ApproveRequestUseCase, request_id, action_data, current_user, session)


@pg_requests_router.post("/requests/{request_id}/reject")
async def reject_purchase_request(
    request_id: str,
    action_data: RequestActionData,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    return await run_action(RejectRequestUseCase, request_id, action_data, current_user, session)


@pg_requests_router.post("/requests/{request_id}/return")
async def return_purchase_request(
    request_id: str,
    action_data: RequestActionData,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Send the request back to its requester as a draft"""
    return await run_action(ReturnForModificationUseCase, request_id, action_data, current_user, session)


@pg_requests_router.post("/requests/{request_id}/purchase")
async def mark_purchase_request_purchased(
    request_id: str,
    action_data: Optional[RequestActionData] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    return await run_action(MarkAsPurchasedUseCase, request_id, action_data, current_user, session)


@pg_requests_router.post("/requests/{request_id}/bank-round")
async def complete_bank_round(
    request_id: str,
    action_data: Optional[RequestActionData] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    return await run_action(CompleteBankRoundUseCase, request_id, action_data, current_user, session)


# ==================== ATTACHMENTS ====================

@pg_requests_router.post("/requests/{request_id}/attachments")
async def upload_attachment(
    request_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    content = await file.read()
    if len(content) > MAX_ATTACHMENT_BYTES:
        raise HTTPException(status_code=400, detail="File is too large (max 10MB)")

    mime_type = file.content_type or "application/octet-stream"
    use_case = AddAttachmentUseCase(
        repository=build_repository(session),
        workflow=build_workflow(),
        id_generator=new_id,
        clock=utcnow,
    )
    command = AddAttachmentCommand(
        request_id=request_id,
        file_name=file.filename or "",
        file_data=f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}" if content else "",
        mime_type=mime_type,
    )
    try:
        attachment = await use_case.execute(command, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return {
        "id": attachment.id,
        "file_name": attachment.file_name,
        "mime_type": attachment.mime_type,
        "uploaded_at": attachment.uploaded_at.isoformat(),
    }


@pg_requests_router.delete("/requests/{request_id}/attachments/{attachment_id}")
async def delete_attachment(
    request_id: str,
    attachment_id: str,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    use_case = RemoveAttachmentUseCase(build_repository(session), build_workflow())
    try:
        await use_case.execute(request_id, attachment_id, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return {"message": "Attachment deleted"}
