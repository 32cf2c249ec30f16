from datetime import datetime, timezone

import pytest

from app.identity.domain.models import UserRole
from app.requests.domain.models import Attachment, PurchaseRequest
from app.requests.domain.status import RequestStatus
from app.shared.domain.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFound,
    ValidationError,
)
from fakes import BRANCH, OTHER_BRANCH, make_engine, make_item, make_request, make_user

REQUESTER = make_user(UserRole.REQUESTER)
REP = make_user(UserRole.PURCHASING_REP)


def an_attachment(attachment_id="att-1", uploader=REQUESTER):
    return Attachment(
        id=attachment_id,
        file_name="quote.pdf",
        file_data="data:application/pdf;base64,AA==",
        mime_type="application/pdf",
        uploaded_by=uploader.snapshot(),
        uploaded_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
    )


def test_total_is_derived_from_items():
    request = make_request(
        items=[
            make_item("Mop Heads", quantity=10, estimated_cost=10.0),
            make_item("Bleach", quantity=4, estimated_cost=12.5),
        ]
    )

    assert request.total_estimated_cost == 150.0


@pytest.mark.parametrize(
    "items",
    [
        [],
        [make_item(name="  ")],
        [make_item(quantity=0)],
        [make_item(estimated_cost=-1.0)],
    ],
)
def test_draft_rejects_invalid_items(items):
    with pytest.raises(ValidationError):
        make_request(items=items)


def test_draft_allows_missing_justification():
    request = make_request(items=[make_item(justification="")])

    assert request.status == RequestStatus.DRAFT
    assert request.reference_number is None


def test_draft_stores_requester_snapshot():
    request = make_request(requester=make_user(UserRole.REQUESTER, branch_ids=("b-1", "b-2")))

    assert request.requester.branch_ids == ()


def test_edit_replaces_items_branch_and_department():
    request = make_request(requester=REQUESTER)

    request.edit(
        items=[make_item("Towels", quantity=20, estimated_cost=15.0)],
        branch=OTHER_BRANCH,
        department="Laundry",
        editor=REQUESTER,
    )

    assert [item.name for item in request.items] == ["Towels"]
    assert request.branch == OTHER_BRANCH
    assert request.department == "Laundry"
    assert request.total_estimated_cost == 300.0


def test_edit_only_in_draft():
    request = make_request(requester=REQUESTER)
    make_engine().submit(request, REQUESTER, reference_number=1001)

    with pytest.raises(InvalidTransitionError):
        request.edit(items=[make_item()], branch=BRANCH, department="Housekeeping", editor=REQUESTER)


def test_edit_by_someone_else_is_denied():
    request = make_request(requester=REQUESTER)
    other = make_user(UserRole.REQUESTER, user_id="other")

    with pytest.raises(AuthorizationError):
        request.edit(items=[make_item()], branch=BRANCH, department="Housekeeping", editor=other)

    admin = make_user(UserRole.ADMIN)
    request.edit(items=[make_item()], branch=BRANCH, department="Kitchen", editor=admin)
    assert request.department == "Kitchen"


def test_reference_number_is_assigned_once():
    request = make_request()
    request.assign_reference_number(1001)

    with pytest.raises(InvalidTransitionError):
        request.assign_reference_number(1002)
    assert request.reference_number == 1001


def awaiting_purchase():
    request = make_request()
    engine = make_engine()
    engine.submit(request, REQUESTER, reference_number=1001)
    engine.approve(request, make_user(UserRole.HOTEL_MANAGER))
    return request


def test_attachments_can_be_removed_by_uploader_or_admin():
    request = awaiting_purchase()
    request.attach(an_attachment("att-1", uploader=REP), REP)
    request.attach(an_attachment("att-2", uploader=REP), REP)

    with pytest.raises(AuthorizationError):
        request.remove_attachment("att-1", make_user(UserRole.HOTEL_MANAGER))
    with pytest.raises(NotFound):
        request.remove_attachment("missing", REP)

    request.remove_attachment("att-1", REP)
    request.remove_attachment("att-2", make_user(UserRole.ADMIN))
    assert request.attachments == ()


@pytest.mark.parametrize(
    "uploader",
    [
        REQUESTER,
        make_user(UserRole.HOTEL_MANAGER),
        make_user(UserRole.ACCOUNTANT),
        make_user(UserRole.PURCHASING_REP, branch_ids=("b-2",)),
    ],
)
def test_only_purchasing_staff_of_the_branch_can_attach(uploader):
    request = awaiting_purchase()

    with pytest.raises(AuthorizationError):
        request.attach(an_attachment(uploader=uploader), uploader)
    assert request.attachments == ()


def test_purchasing_manager_can_attach_while_awaiting_approval():
    request = make_request(items=[make_item(quantity=1, estimated_cost=9000.0)])
    engine = make_engine()
    engine.submit(request, REQUESTER, reference_number=1001)
    engine.approve(request, make_user(UserRole.HOTEL_MANAGER))
    engine.mark_as_purchased(request, REP)
    assert request.status == RequestStatus.PENDING_PM_APPROVAL

    manager = make_user(UserRole.PURCHASING_MANAGER)
    request.attach(an_attachment(uploader=manager), manager)
    assert len(request.attachments) == 1


def test_attach_outside_purchase_stages_is_refused():
    draft = make_request()
    with pytest.raises(InvalidTransitionError):
        draft.attach(an_attachment(uploader=REP), REP)

    rejected = make_request()
    engine = make_engine()
    engine.submit(rejected, REQUESTER, reference_number=1001)
    engine.reject(rejected, make_user(UserRole.HOTEL_MANAGER), "Duplicate order")
    with pytest.raises(InvalidTransitionError):
        rejected.attach(an_attachment(uploader=REP), REP)
    assert rejected.attachments == ()


def test_admin_can_attach_at_any_stage():
    admin = make_user(UserRole.ADMIN, branch_ids=())
    request = make_request()

    request.attach(an_attachment(uploader=admin), admin)

    assert request.attachments[0].uploaded_by.id == admin.id


def test_history_is_append_only():
    request = PurchaseRequest.draft(
        id="req-9",
        requester=REQUESTER,
        branch=BRANCH,
        department="Housekeeping",
        items=[make_item()],
        created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    engine = make_engine()
    engine.submit(request, REQUESTER, reference_number=1001)
    first = request.approval_history[0]

    engine.return_for_modification(request, make_user(UserRole.HOTEL_MANAGER), "Fix quantities")

    assert request.approval_history[0] is first
    assert len(request.approval_history) == 2
