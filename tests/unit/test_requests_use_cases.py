import pytest

from app.identity.domain.models import UserRole
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
from app.requests.domain.status import HistoryAction, RequestStatus
from app.shared.domain.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFound,
    ValidationError,
)
from fakes import (
    FakePurchaseRequestRepository,
    FixedClock,
    SequentialIds,
    make_engine,
    make_user,
    run,
)

REQUESTER = make_user(UserRole.REQUESTER)
HM = make_user(UserRole.HOTEL_MANAGER)
REP = make_user(UserRole.PURCHASING_REP)
DEPARTMENTS = ("Housekeeping", "Kitchen", "Projects")


def mop_heads(justification="Worn out"):
    return ItemInput(
        name=" Mop Heads ",
        quantity=10,
        unit="piece",
        estimated_cost=10.0,
        category="Housekeeping",
        justification=justification,
    )


def create(repo, engine=None, submit=True, department="Housekeeping", items=None, user=REQUESTER):
    use_case = CreatePurchaseRequestUseCase(
        repository=repo,
        workflow=engine or make_engine(),
        id_generator=SequentialIds(f"req-{len(repo.requests) + 1}"),
        clock=FixedClock(),
        departments=DEPARTMENTS,
    )
    command = CreatePurchaseRequestCommand(
        items=items or [mop_heads()],
        branch_id="b-1",
        department=department,
        submit=submit,
    )
    return run(use_case.execute(command, user))


def test_create_and_submit_assigns_first_reference_number():
    repo = FakePurchaseRequestRepository()

    request = create(repo)

    assert request.status == RequestStatus.PENDING_HM_APPROVAL
    assert request.reference_number == 1001
    assert request.items[0].name == "Mop Heads"
    assert request.approval_history[0].action == HistoryAction.SUBMITTED
    assert repo.commits == 1
    assert repo.stored(request.id).status == RequestStatus.PENDING_HM_APPROVAL


def test_reference_numbers_increase_per_submission():
    repo = FakePurchaseRequestRepository()

    first = create(repo)
    draft = create(repo, submit=False)
    second = create(repo, department="Projects")

    assert first.reference_number == 1001
    assert draft.reference_number is None
    assert second.reference_number == 1002
    assert second.status == RequestStatus.PENDING_QS_APPROVAL


def test_create_with_unknown_department_or_branch():
    repo = FakePurchaseRequestRepository()

    with pytest.raises(ValidationError):
        create(repo, department="Spa")

    use_case = CreatePurchaseRequestUseCase(
        repository=repo,
        workflow=make_engine(),
        id_generator=SequentialIds(),
        clock=FixedClock(),
    )
    with pytest.raises(NotFound):
        run(use_case.execute(CreatePurchaseRequestCommand([mop_heads()], "missing", "Kitchen"), REQUESTER))
    assert repo.requests == {}


def test_submit_without_justification_stores_nothing():
    repo = FakePurchaseRequestRepository()

    with pytest.raises(ValidationError):
        create(repo, items=[mop_heads(justification="")])
    assert repo.requests == {}

    draft = create(repo, submit=False, items=[mop_heads(justification="")])
    assert draft.status == RequestStatus.DRAFT


def test_approve_and_reject_through_repository():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)

    approved = run(ApproveRequestUseCase(repo, engine).execute(RequestActionCommand(request.id), HM))
    assert approved.status == RequestStatus.PENDING_PURCHASE
    assert repo.stored(request.id).version == 1

    with pytest.raises(InvalidTransitionError):
        run(RejectRequestUseCase(repo, engine).execute(RequestActionCommand(request.id, reason="late"), HM))


def test_failed_action_leaves_stored_request_untouched():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)

    with pytest.raises(AuthorizationError):
        run(ApproveRequestUseCase(repo, engine).execute(RequestActionCommand(request.id), REQUESTER))
    with pytest.raises(ValidationError):
        run(RejectRequestUseCase(repo, engine).execute(RequestActionCommand(request.id, reason=" "), HM))

    stored = repo.stored(request.id)
    assert stored.status == RequestStatus.PENDING_HM_APPROVAL
    assert len(stored.approval_history) == 1
    assert repo.saves == 0


def test_stale_version_is_a_conflict():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)
    run(ApproveRequestUseCase(repo, engine).execute(RequestActionCommand(request.id, expected_version=0), HM))

    with pytest.raises(ConflictError):
        run(
            MarkAsPurchasedUseCase(repo, engine).execute(
                RequestActionCommand(request.id, expected_version=0),
                make_user(UserRole.PURCHASING_REP),
            )
        )


def test_concurrent_writers_cannot_both_win():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)

    async def race():
        first = await repo.get_request(request.id)
        second = await repo.get_request(request.id)
        engine.approve(first, HM)
        engine.reject(second, HM, "Over budget")
        await repo.save_request(first)
        await repo.save_request(second)

    with pytest.raises(ConflictError):
        run(race())
    assert repo.stored(request.id).status == RequestStatus.PENDING_PURCHASE


def test_return_edit_and_resubmit_cycle():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)
    run(
        ReturnForModificationUseCase(repo, engine).execute(
            RequestActionCommand(request.id, reason="Quantity too high"), HM
        )
    )

    edit = EditDraftRequestUseCase(repo, engine, SequentialIds("item"), DEPARTMENTS)
    command = EditDraftCommand(
        request_id=request.id,
        items=[ItemInput(name="Mop Heads", quantity=5, unit="piece", estimated_cost=10.0, justification="Worn out")],
        branch_id="b-2",
        department="Kitchen",
    )
    edited = run(edit.execute(command, REQUESTER))
    assert edited.status == RequestStatus.DRAFT
    assert edited.total_estimated_cost == 50.0
    assert edited.branch.id == "b-2"

    resubmitted = run(ResubmitRequestUseCase(repo, engine).execute(RequestActionCommand(request.id), REQUESTER))
    assert resubmitted.status == RequestStatus.PENDING_HM_APPROVAL
    assert resubmitted.reference_number == 1001
    assert resubmitted.approval_history[-1].action == HistoryAction.RESUBMITTED


def test_edit_with_resubmit_flag_submits_in_one_step():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    draft = create(repo, engine, submit=False)

    edit = EditDraftRequestUseCase(repo, engine, SequentialIds("item"), DEPARTMENTS)
    command = EditDraftCommand(
        request_id=draft.id,
        items=[mop_heads()],
        branch_id="b-1",
        department="Projects",
        resubmit=True,
    )
    request = run(edit.execute(command, REQUESTER))

    assert request.status == RequestStatus.PENDING_QS_APPROVAL
    assert request.reference_number == 1001
    assert request.approval_history[-1].action == HistoryAction.SUBMITTED


def test_full_lifecycle_through_use_cases():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)
    action = RequestActionCommand(request.id)

    run(ApproveRequestUseCase(repo, engine).execute(action, HM))
    run(MarkAsPurchasedUseCase(repo, engine).execute(action, make_user(UserRole.PURCHASING_REP)))
    stored = repo.stored(request.id)
    assert stored.status == RequestStatus.PENDING_INVOICE

    # The bank round cannot be completed before the invoice is processed
    with pytest.raises(InvalidTransitionError):
        run(CompleteBankRoundUseCase(repo, engine).execute(action, make_user(UserRole.BANK_ROUNDS_OFFICER)))


def test_missing_request_is_not_found():
    repo = FakePurchaseRequestRepository()

    with pytest.raises(NotFound):
        run(ApproveRequestUseCase(repo, make_engine()).execute(RequestActionCommand("nope"), HM))


def quote_pdf(request_id):
    return AddAttachmentCommand(request_id, "quote.pdf", "data:application/pdf;base64,AA==", "application/pdf")


def test_attachments_add_and_remove():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)
    run(ApproveRequestUseCase(repo, engine).execute(RequestActionCommand(request.id), HM))
    add = AddAttachmentUseCase(repo, engine, SequentialIds("att"), FixedClock())

    attachment = run(add.execute(quote_pdf(request.id), REP))
    assert attachment.uploaded_by.id == REP.id
    assert len(repo.stored(request.id).attachments) == 1

    remove = RemoveAttachmentUseCase(repo, engine)
    with pytest.raises(AuthorizationError):
        run(remove.execute(request.id, attachment.id, REQUESTER))
    run(remove.execute(request.id, attachment.id, REP))
    assert repo.stored(request.id).attachments == ()


def test_attachment_refused_before_purchase_stage():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)
    add = AddAttachmentUseCase(repo, engine, SequentialIds("att"), FixedClock())

    with pytest.raises(InvalidTransitionError):
        run(add.execute(quote_pdf(request.id), REP))
    assert repo.stored(request.id).attachments == ()


def test_outsider_cannot_attach_to_rejected_request():
    repo = FakePurchaseRequestRepository()
    engine = make_engine()
    request = create(repo, engine)
    run(RejectRequestUseCase(repo, engine).execute(RequestActionCommand(request.id, reason="Over budget"), HM))
    stranger = make_user(UserRole.REQUESTER, user_id="stranger", branch_ids=("b-2",))
    add = AddAttachmentUseCase(repo, engine, SequentialIds("att"), FixedClock())

    with pytest.raises(InvalidTransitionError):
        run(add.execute(quote_pdf(request.id), stranger))

    stored = repo.stored(request.id)
    assert stored.status == RequestStatus.REJECTED
    assert stored.attachments == ()


def test_attachment_needs_a_file():
    repo = FakePurchaseRequestRepository()
    request = create(repo)
    add = AddAttachmentUseCase(repo, make_engine(), SequentialIds("att"), FixedClock())

    with pytest.raises(ValidationError):
        run(add.execute(AddAttachmentCommand(request.id, "quote.pdf", "", "application/pdf"), REQUESTER))
