from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, Tuple

from app.identity.domain.models import Branch, UserRole, UserSummary
from app.invoices.domain.models import Invoice
from app.requests.domain.status import RequestStatus
from app.shared.domain.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFound,
    ValidationError,
)


@dataclass(frozen=True)
class PurchaseRequestItem:
    id: str
    name: str
    quantity: int
    unit: str
    estimated_cost: float
    category: str = ""
    justification: str = ""

    @property
    def line_total(self) -> float:
        return self.quantity * self.estimated_cost


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    user: UserSummary
    action: str
    timestamp: datetime
    comment: Optional[str] = None


@dataclass(frozen=True)
class Attachment:
    id: str
    file_name: str
    file_data: str
    mime_type: str
    uploaded_by: UserSummary
    uploaded_at: datetime


# Besides admins, only purchasing staff add documents, and only mid-purchase
ATTACHMENT_STATUSES = frozenset({RequestStatus.PENDING_PURCHASE, RequestStatus.PENDING_PM_APPROVAL})
ATTACHMENT_ROLES = frozenset({UserRole.PURCHASING_REP, UserRole.PURCHASING_MANAGER})


def validate_items(items: Sequence[PurchaseRequestItem], require_justification: bool) -> None:
    if not items:
        raise ValidationError("At least one item is required")

    for item in items:
        if not item.name.strip():
            raise ValidationError("Item name is required")
        if item.quantity <= 0:
            raise ValidationError(f"Quantity for '{item.name}' must be greater than zero")
        if item.estimated_cost < 0:
            raise ValidationError(f"Estimated cost for '{item.name}' cannot be negative")
        if require_justification and not item.justification.strip():
            raise ValidationError(f"Justification for '{item.name}' is required")


class PurchaseRequest:
    """Aggregate root for a purchase request.

    Items, status and history change together through this object only.
    The total is always derived from the items, history is append-only and
    status moves exclusively through ``apply_transition``, which the
    workflow engine calls after it has validated the edge and the actor.
    ``version`` is the optimistic-concurrency counter owned by the
    repository.
    """

    def __init__(
        self,
        id: str,
        requester: UserSummary,
        branch: Branch,
        department: str,
        items: Sequence[PurchaseRequestItem],
        created_at: datetime,
        status: RequestStatus = RequestStatus.DRAFT,
        reference_number: Optional[int] = None,
        approval_history: Sequence[ApprovalHistoryEntry] = (),
        attachments: Sequence[Attachment] = (),
        invoice: Optional[Invoice] = None,
        version: int = 0,
    ) -> None:
        self.id = id
        self.created_at = created_at
        self.version = version
        self._requester = requester
        self._branch = branch
        self._department = department
        self._items: Tuple[PurchaseRequestItem, ...] = tuple(items)
        self._status = RequestStatus(status)
        self._reference_number = reference_number
        self._history: Tuple[ApprovalHistoryEntry, ...] = tuple(approval_history)
        self._attachments: Tuple[Attachment, ...] = tuple(attachments)
        self._invoice = invoice

    @classmethod
    def draft(
        cls,
        id: str,
        requester: UserSummary,
        branch: Branch,
        department: str,
        items: Sequence[PurchaseRequestItem],
        created_at: datetime,
    ) -> "PurchaseRequest":
        validate_items(items, require_justification=False)
        if not department.strip():
            raise ValidationError("Department is required")
        return cls(
            id=id,
            requester=requester.snapshot(),
            branch=branch,
            department=department,
            items=items,
            created_at=created_at,
        )

    # ---- read side ----

    @property
    def requester(self) -> UserSummary:
        return self._requester

    @property
    def branch(self) -> Branch:
        return self._branch

    @property
    def department(self) -> str:
        return self._department

    @property
    def items(self) -> Tuple[PurchaseRequestItem, ...]:
        return self._items

    @property
    def status(self) -> RequestStatus:
        return self._status

    @property
    def reference_number(self) -> Optional[int]:
        return self._reference_number

    @property
    def approval_history(self) -> Tuple[ApprovalHistoryEntry, ...]:
        return self._history

    @property
    def attachments(self) -> Tuple[Attachment, ...]:
        return self._attachments

    @property
    def invoice(self) -> Optional[Invoice]:
        return self._invoice

    @property
    def total_estimated_cost(self) -> float:
        return sum(item.line_total for item in self._items)

    def is_owned_by(self, user: UserSummary) -> bool:
        return self._requester.id == user.id

    # ---- mutations ----

    def edit(
        self,
        items: Sequence[PurchaseRequestItem],
        branch: Branch,
        department: str,
        editor: UserSummary,
    ) -> None:
        if self._status != RequestStatus.DRAFT:
            raise InvalidTransitionError("Only draft requests can be edited")
        if not (editor.is_admin or self.is_owned_by(editor)):
            raise AuthorizationError("Only the requester or an admin can edit this request")
        validate_items(items, require_justification=False)
        if not department.strip():
            raise ValidationError("Department is required")

        self._items = tuple(items)
        self._branch = branch
        self._department = department

    def assign_reference_number(self, reference_number: int) -> None:
        if self._reference_number is not None:
            raise InvalidTransitionError("Reference number is already assigned")
        self._reference_number = reference_number

    def attach(self, attachment: Attachment, uploader: UserSummary) -> None:
        if not uploader.is_admin:
            if self._status not in ATTACHMENT_STATUSES:
                raise InvalidTransitionError("Attachments can only be added while the purchase is in progress")
            if uploader.role not in ATTACHMENT_ROLES or self._branch.id not in uploader.branch_ids:
                raise AuthorizationError("Only purchasing staff of this branch can add attachments")
        self._attachments = self._attachments + (attachment,)

    def remove_attachment(self, attachment_id: str, requesting_user: UserSummary) -> Attachment:
        attachment = next((a for a in self._attachments if a.id == attachment_id), None)
        if attachment is None:
            raise NotFound("Attachment not found")
        if not (requesting_user.is_admin or attachment.uploaded_by.id == requesting_user.id):
            raise AuthorizationError("Only the uploader or an admin can delete this attachment")

        self._attachments = tuple(a for a in self._attachments if a.id != attachment_id)
        return attachment

    def apply_transition(
        self,
        next_status: RequestStatus,
        entry: ApprovalHistoryEntry,
        requester: Optional[UserSummary] = None,
        invoice: Optional[Invoice] = None,
    ) -> None:
        """Move to ``next_status`` and record ``entry`` as one step.

        Reserved for the workflow engine; nothing else assigns status.
        """
        if invoice is not None and self._invoice is not None:
            raise InvalidTransitionError("An invoice is already attached to this request")

        self._status = next_status
        self._history = self._history + (entry,)
        if requester is not None:
            self._requester = requester.snapshot()
        if invoice is not None:
            self._invoice = invoice


@dataclass(frozen=True)
class RequestFilters:
    search: Optional[str] = None
    branch_id: Optional[str] = None
    department: Optional[str] = None
    statuses: Tuple[RequestStatus, ...] = field(default_factory=tuple)
    min_total: Optional[float] = None
    max_total: Optional[float] = None
    requester_id: Optional[str] = None
    limit: int = 50
    offset: int = 0
