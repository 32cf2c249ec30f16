import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from app.identity.domain.models import Branch, UserSummary
from app.requests.application.ports import PurchaseRequestRepository
from app.requests.domain.models import Attachment, PurchaseRequest, PurchaseRequestItem
from app.requests.domain.workflow import WorkflowEngine
from app.shared.domain.errors import ConflictError, NotFound, ValidationError

logger = logging.getLogger(__name__)

IdGenerator = Callable[[], str]
Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ItemInput:
    name: str
    quantity: int
    unit: str
    estimated_cost: float
    category: str = ""
    justification: str = ""


@dataclass(frozen=True)
class CreatePurchaseRequestCommand:
    items: Sequence[ItemInput]
    branch_id: str
    department: str
    submit: bool = True


@dataclass(frozen=True)
class EditDraftCommand:
    request_id: str
    items: Sequence[ItemInput]
    branch_id: str
    department: str
    resubmit: bool = False
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class RequestActionCommand:
    request_id: str
    reason: Optional[str] = None
    expected_version: Optional[int] = None


@dataclass(frozen=True)
class AddAttachmentCommand:
    request_id: str
    file_name: str
    file_data: str
    mime_type: str


class _RequestUseCase:
    def __init__(self, repository: PurchaseRequestRepository, workflow: WorkflowEngine) -> None:
        self._repository = repository
        self._workflow = workflow

    async def _load(self, request_id: str, expected_version: Optional[int] = None) -> PurchaseRequest:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise NotFound("Purchase request not found")
        if expected_version is not None and expected_version != request.version:
            raise ConflictError("The request was changed by someone else, reload and try again")
        return request

    async def _branch(self, branch_id: str) -> Branch:
        branch = await self._repository.get_branch(branch_id)
        if branch is None:
            raise NotFound("Branch not found")
        return branch

    async def _submit(self, request: PurchaseRequest, actor: UserSummary) -> None:
        reference_number = None
        if request.reference_number is None:
            reference_number = await self._repository.next_reference_number()
        self._workflow.submit(request, actor, reference_number=reference_number)

    async def _store(self, request: PurchaseRequest) -> PurchaseRequest:
        await self._repository.save_request(request)
        await self._repository.commit()
        return request


def _build_items(items: Sequence[ItemInput], id_generator: IdGenerator) -> list:
    return [
        PurchaseRequestItem(
            id=id_generator(),
            name=item.name.strip(),
            quantity=item.quantity,
            unit=item.unit,
            estimated_cost=item.estimated_cost,
            category=item.category,
            justification=item.justification,
        )
        for item in items
    ]


def _check_department(department: str, departments: Sequence[str]) -> None:
    if departments and department not in departments:
        raise ValidationError(f"Unknown department '{department}'")


class CreatePurchaseRequestUseCase(_RequestUseCase):
    def __init__(
        self,
        repository: PurchaseRequestRepository,
        workflow: WorkflowEngine,
        id_generator: IdGenerator,
        clock: Clock,
        departments: Sequence[str] = (),
    ) -> None:
        super().__init__(repository, workflow)
        self._id_generator = id_generator
        self._clock = clock
        self._departments = departments

    async def execute(
        self,
        command: CreatePurchaseRequestCommand,
        current_user: UserSummary,
    ) -> PurchaseRequest:
        _check_department(command.department, self._departments)
        branch = await self._branch(command.branch_id)

        request = PurchaseRequest.draft(
            id=self._id_generator(),
            requester=current_user,
            branch=branch,
            department=command.department,
            items=_build_items(command.items, self._id_generator),
            created_at=self._clock(),
        )
        if command.submit:
            await self._submit(request, current_user)

        await self._repository.add_request(request)
        await self._repository.commit()

        logger.info(
            f"Request {request.id} created by {current_user.name} "
            f"({request.status.value}, ref {request.reference_number})"
        )
        return request


class EditDraftRequestUseCase(_RequestUseCase):
    def __init__(
        self,
        repository: PurchaseRequestRepository,
        workflow: WorkflowEngine,
        id_generator: IdGenerator,
        departments: Sequence[str] = (),
    ) -> None:
        super().__init__(repository, workflow)
        self._id_generator = id_generator
        self._departments = departments

    async def execute(self, command: EditDraftCommand, current_user: UserSummary) -> PurchaseRequest:
        _check_department(command.department, self._departments)
        request = await self._load(command.request_id, command.expected_version)
        branch = await self._branch(command.branch_id)

        request.edit(
            items=_build_items(command.items, self._id_generator),
            branch=branch,
            department=command.department,
            editor=current_user,
        )
        if command.resubmit:
            await self._submit(request, current_user)
        return await self._store(request)


class ResubmitRequestUseCase(_RequestUseCase):
    async def execute(self, command: RequestActionCommand, current_user: UserSummary) -> PurchaseRequest:
        request = await self._load(command.request_id, command.expected_version)
        await self._submit(request, current_user)
        return await self._store(request)


class ApproveRequestUseCase(_RequestUseCase):
    async def execute(self, command: RequestActionCommand, current_user: UserSummary) -> PurchaseRequest:
        request = await self._load(command.request_id, command.expected_version)
        self._workflow.approve(request, current_user, comment=command.reason)
        return await self._store(request)


class RejectRequestUseCase(_RequestUseCase):
    async def execute(self, command: RequestActionCommand, current_user: UserSummary) -> PurchaseRequest:
        request = await self._load(command.request_id, command.expected_version)
        self._workflow.reject(request, current_user, command.reason)
        return await self._store(request)


class ReturnForModificationUseCase(_RequestUseCase):
    async def execute(self, command: RequestActionCommand, current_user: UserSummary) -> PurchaseRequest:
        request = await self._load(command.request_id, command.expected_version)
        self._workflow.return_for_modification(request, current_user, command.reason)
        return await self._store(request)


class MarkAsPurchasedUseCase(_RequestUseCase):
    async def execute(self, command: RequestActionCommand, current_user: UserSummary) -> PurchaseRequest:
        request = await self._load(command.request_id, command.expected_version)
        self._workflow.mark_as_purchased(request, current_user)
        return await self._store(request)


class CompleteBankRoundUseCase(_RequestUseCase):
    async def execute(self, command: RequestActionCommand, current_user: UserSummary) -> PurchaseRequest:
        request = await self._load(command.request_id, command.expected_version)
        self._workflow.complete_bank_round(request, current_user)
        return await self._store(request)


class AddAttachmentUseCase(_RequestUseCase):
    def __init__(
        self,
        repository: PurchaseRequestRepository,
        workflow: WorkflowEngine,
        id_generator: IdGenerator,
        clock: Clock,
    ) -> None:
        super().__init__(repository, workflow)
        self._id_generator = id_generator
        self._clock = clock

    async def execute(self, command: AddAttachmentCommand, current_user: UserSummary) -> Attachment:
        if not command.file_name.strip() or not command.file_data:
            raise ValidationError("A file is required")

        request = await self._load(command.request_id)
        attachment = Attachment(
            id=self._id_generator(),
            file_name=command.file_name.strip(),
            file_data=command.file_data,
            mime_type=command.mime_type,
            uploaded_by=current_user.snapshot(),
            uploaded_at=self._clock(),
        )
        request.attach(attachment, current_user)
        await self._store(request)
        return attachment


class RemoveAttachmentUseCase(_RequestUseCase):
    async def execute(self, request_id: str, attachment_id: str, current_user: UserSummary) -> None:
        request = await self._load(request_id)
        request.remove_attachment(attachment_id, current_user)
        await self._store(request)
