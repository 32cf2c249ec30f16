"""
Purchase request workflow engine

Approval dispatch is a fixed table keyed by (status, approval path) and
answering (required role, next status). Departments pick the path: the
projects department walks the quality/projects chain, every other
department goes through the hotel manager. Purchasing, invoicing and bank
rounds are operational stages with a single owning role each.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from app.identity.domain.models import RoleDefinition, UserRole, UserSummary
from app.invoices.domain.models import Invoice
from app.requests.domain.models import ApprovalHistoryEntry, PurchaseRequest, validate_items
from app.requests.domain.status import HistoryAction, RequestStatus
from app.shared.domain.errors import (
    AuthorizationError,
    InvalidTransitionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ApprovalPath(str, enum.Enum):
    PROJECTS = "projects"
    STANDARD = "standard"


@dataclass(frozen=True)
class Transition:
    required_role: str
    next_status: RequestStatus


S = RequestStatus

APPROVAL_TABLE: Dict[Tuple[RequestStatus, ApprovalPath], Transition] = {
    (S.PENDING_HM_APPROVAL, ApprovalPath.STANDARD): Transition(UserRole.HOTEL_MANAGER, S.PENDING_PURCHASE),
    (S.PENDING_QS_APPROVAL, ApprovalPath.PROJECTS): Transition(UserRole.QUALITY_SUPERVISOR, S.PENDING_QM_APPROVAL),
    (S.PENDING_QM_APPROVAL, ApprovalPath.PROJECTS): Transition(UserRole.QUALITY_MANAGER, S.PENDING_PA_APPROVAL),
    (S.PENDING_PA_APPROVAL, ApprovalPath.PROJECTS): Transition(UserRole.PROJECTS_ACCOUNTANT, S.PENDING_FA_APPROVAL),
    (S.PENDING_FA_APPROVAL, ApprovalPath.PROJECTS): Transition(UserRole.FINAL_APPROVER, S.PENDING_PURCHASE),
}

# Post-purchase approvals are shared by both paths
for _path in ApprovalPath:
    APPROVAL_TABLE[(S.PENDING_PM_APPROVAL, _path)] = Transition(UserRole.PURCHASING_MANAGER, S.PENDING_INVOICE)
    APPROVAL_TABLE[(S.PENDING_AM_APPROVAL, _path)] = Transition(UserRole.ACCOUNTING_MANAGER, S.PENDING_BANK_ROUNDS)

INITIAL_STATUS: Dict[ApprovalPath, RequestStatus] = {
    ApprovalPath.PROJECTS: S.PENDING_QS_APPROVAL,
    ApprovalPath.STANDARD: S.PENDING_HM_APPROVAL,
}

OPERATION_ROLES: Dict[RequestStatus, str] = {
    S.PENDING_PURCHASE: UserRole.PURCHASING_REP,
    S.PENDING_INVOICE: UserRole.ACCOUNTANT,
    S.PENDING_BANK_ROUNDS: UserRole.BANK_ROUNDS_OFFICER,
}

PENDING_APPROVAL_STATUSES: FrozenSet[RequestStatus] = frozenset(status for status, _ in APPROVAL_TABLE)

# Single owning role for every status that waits on someone
STAGE_ROLES: Dict[RequestStatus, str] = {
    status: transition.required_role for (status, _), transition in APPROVAL_TABLE.items()
}
STAGE_ROLES.update(OPERATION_ROLES)


def stage_role(status: RequestStatus) -> Optional[str]:
    return STAGE_ROLES.get(status)


def default_role_definitions() -> List[RoleDefinition]:
    definitions = [
        RoleDefinition(
            name=UserRole.REQUESTER,
            permissions=frozenset({
                S.DRAFT.value,
                S.PENDING_HM_APPROVAL.value,
                S.REJECTED.value,
                S.COMPLETED.value,
            }),
        )
    ]
    for role in UserRole.ALL:
        if role in (UserRole.REQUESTER, UserRole.AUDITOR, UserRole.ADMIN):
            continue
        statuses = frozenset(status.value for status, owner in STAGE_ROLES.items() if owner == role)
        definitions.append(RoleDefinition(name=role, permissions=statuses))

    everything = frozenset(status.value for status in RequestStatus)
    definitions.append(RoleDefinition(name=UserRole.AUDITOR, permissions=everything))
    definitions.append(RoleDefinition(name=UserRole.ADMIN, permissions=everything))
    return definitions


class WorkflowEngine:
    def __init__(
        self,
        clock: Clock,
        pm_approval_threshold: float = 5000.0,
        projects_department: str = "Projects",
    ) -> None:
        self._clock = clock
        self._pm_approval_threshold = pm_approval_threshold
        self._projects_department = projects_department

    # ---- routing ----

    def path_for(self, department: str) -> ApprovalPath:
        if department == self._projects_department:
            return ApprovalPath.PROJECTS
        return ApprovalPath.STANDARD

    def initial_status(self, department: str) -> RequestStatus:
        return INITIAL_STATUS[self.path_for(department)]

    def edges(self) -> FrozenSet[Tuple[RequestStatus, RequestStatus]]:
        """Every (from, to) pair the engine can produce."""
        edges = {(S.DRAFT, status) for status in INITIAL_STATUS.values()}
        edges.update((status, t.next_status) for (status, _), t in APPROVAL_TABLE.items())
        for status in PENDING_APPROVAL_STATUSES:
            edges.add((status, S.REJECTED))
            edges.add((status, S.DRAFT))
        edges.add((S.PENDING_PURCHASE, S.PENDING_PM_APPROVAL))
        edges.add((S.PENDING_PURCHASE, S.PENDING_INVOICE))
        edges.add((S.PENDING_INVOICE, S.PENDING_AM_APPROVAL))
        edges.add((S.PENDING_BANK_ROUNDS, S.COMPLETED))
        return frozenset(edges)

    # ---- authorization helpers ----

    def is_authorized(self, user: UserSummary, status: RequestStatus) -> bool:
        role = stage_role(status)
        return role is not None and (user.is_admin or user.role == role)

    def can_act(self, request: PurchaseRequest, user: UserSummary) -> bool:
        return self.is_authorized(user, request.status)

    def ensure_can_process_invoice(self, request: PurchaseRequest, actor: UserSummary) -> None:
        self._require_status(request, S.PENDING_INVOICE, "process an invoice")
        self._require_role(actor, UserRole.ACCOUNTANT, request.status)
        if request.invoice is not None:
            raise InvalidTransitionError("An invoice is already attached to this request")

    # ---- transitions ----

    def submit(
        self,
        request: PurchaseRequest,
        actor: UserSummary,
        reference_number: Optional[int] = None,
    ) -> None:
        """DRAFT -> first pending status of the request's department path.

        The first real submission consumes ``reference_number``; later ones
        are recorded as resubmissions and keep the existing number.
        """
        if request.status != S.DRAFT:
            raise InvalidTransitionError("Only draft requests can be submitted")
        if not (actor.is_admin or request.is_owned_by(actor)):
            raise AuthorizationError("Only the requester or an admin can submit this request")
        validate_items(request.items, require_justification=True)

        first_submission = request.reference_number is None
        if first_submission and reference_number is None:
            raise ValidationError("A reference number is required for the first submission")

        if first_submission:
            request.assign_reference_number(reference_number)
        action = HistoryAction.SUBMITTED if first_submission else HistoryAction.RESUBMITTED
        # An admin resubmitting someone else's request becomes its requester
        requester = actor if not request.is_owned_by(actor) else None
        self._advance(
            request,
            self.initial_status(request.department),
            self._entry(actor, action),
            requester=requester,
        )

    def approve(self, request: PurchaseRequest, actor: UserSummary, comment: Optional[str] = None) -> None:
        transition = self._approval_step(request)
        self._require_role(actor, transition.required_role, request.status)
        self._advance(request, transition.next_status, self._entry(actor, HistoryAction.APPROVED, comment))

    def reject(self, request: PurchaseRequest, actor: UserSummary, reason: Optional[str]) -> None:
        transition = self._approval_step(request)
        self._require_role(actor, transition.required_role, request.status)
        reason = self._require_reason(reason, "rejecting")
        self._advance(request, S.REJECTED, self._entry(actor, HistoryAction.REJECTED, reason))

    def return_for_modification(
        self, request: PurchaseRequest, actor: UserSummary, reason: Optional[str]
    ) -> None:
        transition = self._approval_step(request)
        self._require_role(actor, transition.required_role, request.status)
        reason = self._require_reason(reason, "returning for modification")
        self._advance(
            request,
            S.DRAFT,
            self._entry(actor, HistoryAction.RETURNED_FOR_MODIFICATION, reason),
        )

    def mark_as_purchased(self, request: PurchaseRequest, actor: UserSummary) -> None:
        self._require_status(request, S.PENDING_PURCHASE, "mark as purchased")
        self._require_role(actor, UserRole.PURCHASING_REP, request.status)

        # Strictly above the threshold needs the purchasing manager
        if request.total_estimated_cost > self._pm_approval_threshold:
            next_status = S.PENDING_PM_APPROVAL
        else:
            next_status = S.PENDING_INVOICE
        self._advance(request, next_status, self._entry(actor, HistoryAction.MARKED_AS_PURCHASED))

    def process_invoice(self, request: PurchaseRequest, actor: UserSummary, invoice: Invoice) -> None:
        self.ensure_can_process_invoice(request, actor)
        self._advance(
            request,
            S.PENDING_AM_APPROVAL,
            self._entry(actor, HistoryAction.PROCESSED_INVOICE),
            invoice=invoice,
        )

    def complete_bank_round(self, request: PurchaseRequest, actor: UserSummary) -> None:
        self._require_status(request, S.PENDING_BANK_ROUNDS, "complete the bank round")
        self._require_role(actor, UserRole.BANK_ROUNDS_OFFICER, request.status)
        self._advance(request, S.COMPLETED, self._entry(actor, HistoryAction.BANK_ROUND_COMPLETED))

    # ---- internals ----

    def _approval_step(self, request: PurchaseRequest) -> Transition:
        path = self.path_for(request.department)
        transition = APPROVAL_TABLE.get((request.status, path))
        if transition is None:
            raise InvalidTransitionError(
                f"Request in status '{request.status.value}' is not awaiting approval "
                f"on the {path.value} path"
            )
        return transition

    @staticmethod
    def _require_status(request: PurchaseRequest, expected: RequestStatus, action: str) -> None:
        if request.status != expected:
            raise InvalidTransitionError(
                f"Cannot {action} while the request is '{request.status.value}'"
            )

    @staticmethod
    def _require_role(actor: UserSummary, role: str, status: RequestStatus) -> None:
        if actor.is_admin or actor.role == role:
            return
        raise AuthorizationError(
            f"Role '{actor.role}' is not authorized to act on a request in status '{status.value}'"
        )

    @staticmethod
    def _require_reason(reason: Optional[str], action: str) -> str:
        if reason is None or not reason.strip():
            raise ValidationError(f"A reason is required when {action} a request")
        return reason.strip()

    def _entry(self, actor: UserSummary, action: str, comment: Optional[str] = None) -> ApprovalHistoryEntry:
        return ApprovalHistoryEntry(
            user=actor.snapshot(),
            action=action,
            timestamp=self._clock(),
            comment=comment,
        )

    def _advance(
        self,
        request: PurchaseRequest,
        next_status: RequestStatus,
        entry: ApprovalHistoryEntry,
        requester: Optional[UserSummary] = None,
        invoice: Optional[Invoice] = None,
    ) -> None:
        previous = request.status
        request.apply_transition(next_status, entry, requester=requester, invoice=invoice)
        logger.info(
            f"Request {request.id} moved {previous.value} -> {next_status.value} "
            f"({entry.action} by {entry.user.role})"
        )
