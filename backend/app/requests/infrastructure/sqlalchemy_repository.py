import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, desc, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.identity.domain.models import Branch, UserSummary
from app.invoices.domain.models import Invoice
from app.invoices.presentation.response_mapper import invoice_analysis_to_response
from app.invoices.presentation.schemas import InvoiceAnalysisSchema
from app.requests.application.ports import PurchaseRequestRepository
from app.requests.domain.models import (
    ApprovalHistoryEntry,
    Attachment,
    PurchaseRequest,
    PurchaseRequestItem,
)
from app.requests.domain.status import RequestStatus
from app.shared.domain.errors import ConflictError
from database import (
    ApprovalHistory as ApprovalHistoryModel,
    Attachment as AttachmentModel,
    Branch as BranchModel,
    Invoice as InvoiceModel,
    PurchaseRequest as PurchaseRequestModel,
    PurchaseRequestItem as PurchaseRequestItemModel,
)

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _item_rows(request: PurchaseRequest) -> List[dict]:
    return [
        {
            "id": item.id,
            "request_id": request.id,
            "name": item.name,
            "quantity": item.quantity,
            "unit": item.unit,
            "estimated_cost": item.estimated_cost,
            "category": item.category,
            "justification": item.justification,
            "item_index": index,
        }
        for index, item in enumerate(request.items)
    ]


def _history_row(request_id: str, seq: int, entry: ApprovalHistoryEntry) -> dict:
    return {
        "request_id": request_id,
        "seq": seq,
        "user_id": entry.user.id,
        "user_name": entry.user.name,
        "user_role": entry.user.role,
        "action": entry.action,
        "comment": entry.comment,
        "timestamp": entry.timestamp,
    }


def _attachment_row(request_id: str, attachment: Attachment) -> dict:
    return {
        "id": attachment.id,
        "request_id": request_id,
        "file_name": attachment.file_name,
        "file_data": attachment.file_data,
        "mime_type": attachment.mime_type,
        "uploaded_by": attachment.uploaded_by.id,
        "uploaded_by_name": attachment.uploaded_by.name,
        "uploaded_by_role": attachment.uploaded_by.role,
        "uploaded_at": attachment.uploaded_at,
    }


def _invoice_row(request: PurchaseRequest, invoice: Invoice) -> dict:
    return {
        "id": invoice.id,
        "request_id": request.id,
        "branch_id": request.branch.id,
        "vendor_name": invoice.vendor_name,
        "invoice_number": invoice.invoice_number,
        "invoice_date": invoice.invoice_date,
        "total_amount": invoice.total_amount,
        "file_data": invoice.file_data,
        "mime_type": invoice.mime_type,
        "analysis": json.dumps(invoice_analysis_to_response(invoice.analysis)),
    }


def _request_values(request: PurchaseRequest) -> dict:
    return {
        "reference_number": request.reference_number,
        "requester_id": request.requester.id,
        "requester_name": request.requester.name,
        "requester_role": request.requester.role,
        "branch_id": request.branch.id,
        "branch_name": request.branch.name,
        "branch_city": request.branch.city,
        "department": request.department,
        "status": request.status.value,
        "total_estimated_cost": request.total_estimated_cost,
    }


class SqlAlchemyPurchaseRequestRepository(PurchaseRequestRepository):
    def __init__(self, session: AsyncSession, reference_number_start: int = 1000) -> None:
        self._session = session
        self._reference_number_start = reference_number_start

    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        result = await self._session.execute(
            select(BranchModel).where(BranchModel.id == branch_id)
        )
        branch = result.scalar_one_or_none()
        if branch is None:
            return None
        return Branch(id=branch.id, name=branch.name, city=branch.city)

    async def get_request(self, request_id: str) -> Optional[PurchaseRequest]:
        result = await self._session.execute(
            select(PurchaseRequestModel)
            .where(PurchaseRequestModel.id == request_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return (await self._hydrate([row]))[0]

    async def next_reference_number(self) -> int:
        result = await self._session.execute(
            select(func.max(PurchaseRequestModel.reference_number))
        )
        current = result.scalar() or 0
        # Uniqueness on the column rejects a concurrent duplicate at commit
        return max(current, self._reference_number_start) + 1

    async def add_request(self, request: PurchaseRequest) -> None:
        self._session.add(
            PurchaseRequestModel(
                id=request.id,
                version=request.version,
                created_at=request.created_at,
                **_request_values(request),
            )
        )
        # Parent row must exist before the child inserts below
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(f"Purchase request {request.id} rejected: {exc.orig}")
            raise ConflictError("Reference number already taken, please retry")
        await self._write_children(request, stored_history=0, stored_attachment_ids=set(), has_invoice=False)

    async def save_request(self, request: PurchaseRequest) -> None:
        try:
            result = await self._session.execute(
                update(PurchaseRequestModel)
                .where(
                    PurchaseRequestModel.id == request.id,
                    PurchaseRequestModel.version == request.version,
                )
                .values(version=request.version + 1, **_request_values(request))
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(f"Purchase request {request.id} rejected: {exc.orig}")
            raise ConflictError("Reference number already taken, please retry")
        if result.rowcount == 0:
            logger.warning(f"Version conflict saving request {request.id} at version {request.version}")
            raise ConflictError("The request was changed by someone else, reload and try again")

        await self._session.execute(
            delete(PurchaseRequestItemModel).where(PurchaseRequestItemModel.request_id == request.id)
        )

        stored_history = (await self._session.execute(
            select(func.count()).select_from(ApprovalHistoryModel)
            .where(ApprovalHistoryModel.request_id == request.id)
        )).scalar() or 0
        if stored_history > len(request.approval_history):
            raise ConflictError("Approval history cannot shrink")

        stored_attachment_ids = set((await self._session.execute(
            select(AttachmentModel.id).where(AttachmentModel.request_id == request.id)
        )).scalars().all())
        kept_ids = {attachment.id for attachment in request.attachments}
        removed = stored_attachment_ids - kept_ids
        if removed:
            await self._session.execute(
                delete(AttachmentModel).where(AttachmentModel.id.in_(removed))
            )

        has_invoice = (await self._session.execute(
            select(InvoiceModel.id).where(InvoiceModel.request_id == request.id)
        )).scalar_one_or_none() is not None

        await self._write_children(request, stored_history, stored_attachment_ids, has_invoice)
        request.version += 1

    async def _write_children(
        self,
        request: PurchaseRequest,
        stored_history: int,
        stored_attachment_ids: set,
        has_invoice: bool,
    ) -> None:
        # Core inserts keep these rows out of the identity map
        items = _item_rows(request)
        if items:
            await self._session.execute(insert(PurchaseRequestItemModel), items)

        history = [
            _history_row(request.id, seq, entry)
            for seq, entry in enumerate(request.approval_history)
            if seq >= stored_history
        ]
        if history:
            await self._session.execute(insert(ApprovalHistoryModel), history)

        attachments = [
            _attachment_row(request.id, attachment)
            for attachment in request.attachments
            if attachment.id not in stored_attachment_ids
        ]
        if attachments:
            await self._session.execute(insert(AttachmentModel), attachments)

        if request.invoice is not None and not has_invoice:
            await self._session.execute(insert(InvoiceModel), [_invoice_row(request, request.invoice)])

    async def list_requests(self) -> Sequence[PurchaseRequest]:
        result = await self._session.execute(
            select(PurchaseRequestModel).order_by(desc(PurchaseRequestModel.created_at))
        )
        return await self._hydrate(result.scalars().all())

    async def list_invoice_numbers(self, branch_id: str) -> Sequence[str]:
        result = await self._session.execute(
            select(InvoiceModel.invoice_number).where(InvoiceModel.branch_id == branch_id)
        )
        return list(result.scalars().all())

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(f"Purchase request commit rejected: {exc.orig}")
            raise ConflictError("A concurrent change conflicted with this one, please retry")

    async def _hydrate(self, rows: Sequence[PurchaseRequestModel]) -> List[PurchaseRequest]:
        request_ids = [row.id for row in rows]
        if not request_ids:
            return []

        items_by_request: Dict[str, List[PurchaseRequestItem]] = {}
        items_result = await self._session.execute(
            select(PurchaseRequestItemModel)
            .where(PurchaseRequestItemModel.request_id.in_(request_ids))
            .order_by(PurchaseRequestItemModel.request_id, PurchaseRequestItemModel.item_index)
        )
        for item in items_result.scalars().all():
            items_by_request.setdefault(item.request_id, []).append(
                PurchaseRequestItem(
                    id=item.id,
                    name=item.name,
                    quantity=item.quantity,
                    unit=item.unit,
                    estimated_cost=item.estimated_cost,
                    category=item.category,
                    justification=item.justification,
                )
            )

        history_by_request: Dict[str, List[ApprovalHistoryEntry]] = {}
        history_result = await self._session.execute(
            select(ApprovalHistoryModel)
            .where(ApprovalHistoryModel.request_id.in_(request_ids))
            .order_by(ApprovalHistoryModel.request_id, ApprovalHistoryModel.seq)
        )
        for entry in history_result.scalars().all():
            history_by_request.setdefault(entry.request_id, []).append(
                ApprovalHistoryEntry(
                    user=UserSummary(id=entry.user_id, name=entry.user_name, role=entry.user_role),
                    action=entry.action,
                    timestamp=_aware(entry.timestamp),
                    comment=entry.comment,
                )
            )

        attachments_by_request: Dict[str, List[Attachment]] = {}
        attachments_result = await self._session.execute(
            select(AttachmentModel)
            .where(AttachmentModel.request_id.in_(request_ids))
            .order_by(AttachmentModel.uploaded_at)
        )
        for attachment in attachments_result.scalars().all():
            attachments_by_request.setdefault(attachment.request_id, []).append(
                Attachment(
                    id=attachment.id,
                    file_name=attachment.file_name,
                    file_data=attachment.file_data,
                    mime_type=attachment.mime_type,
                    uploaded_by=UserSummary(
                        id=attachment.uploaded_by,
                        name=attachment.uploaded_by_name,
                        role=attachment.uploaded_by_role,
                    ),
                    uploaded_at=_aware(attachment.uploaded_at),
                )
            )

        invoices: Dict[str, Invoice] = {}
        invoices_result = await self._session.execute(
            select(InvoiceModel).where(InvoiceModel.request_id.in_(request_ids))
        )
        for invoice in invoices_result.scalars().all():
            invoices[invoice.request_id] = Invoice(
                id=invoice.id,
                vendor_name=invoice.vendor_name,
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.invoice_date,
                total_amount=invoice.total_amount,
                file_data=invoice.file_data,
                mime_type=invoice.mime_type,
                analysis=InvoiceAnalysisSchema.model_validate(json.loads(invoice.analysis)).to_domain(),
            )

        return [
            PurchaseRequest(
                id=row.id,
                requester=UserSummary(id=row.requester_id, name=row.requester_name, role=row.requester_role),
                branch=Branch(id=row.branch_id, name=row.branch_name, city=row.branch_city),
                department=row.department,
                items=items_by_request.get(row.id, []),
                created_at=_aware(row.created_at),
                status=RequestStatus(row.status),
                reference_number=row.reference_number,
                approval_history=history_by_request.get(row.id, []),
                attachments=attachments_by_request.get(row.id, []),
                invoice=invoices.get(row.id),
                version=row.version,
            )
            for row in rows
        ]
