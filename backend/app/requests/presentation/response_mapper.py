from typing import Any, Dict, Optional

from app.identity.domain.models import UserSummary
from app.invoices.presentation.response_mapper import invoice_to_response
from app.requests.domain.models import PurchaseRequest


def user_snapshot_to_response(user: UserSummary) -> Dict[str, Any]:
    return {"id": user.id, "name": user.name, "role": user.role}


def purchase_request_to_response(
    request: PurchaseRequest,
    include_files: bool = True,
    can_act: Optional[bool] = None,
) -> Dict[str, Any]:
    response = {
        "id": request.id,
        "reference_number": request.reference_number,
        "version": request.version,
        "status": request.status.value,
        "requester": user_snapshot_to_response(request.requester),
        "branch": {
            "id": request.branch.id,
            "name": request.branch.name,
            "city": request.branch.city,
        },
        "department": request.department,
        "items": [
            {
                "id": item.id,
                "name": item.name,
                "quantity": item.quantity,
                "unit": item.unit,
                "estimated_cost": item.estimated_cost,
                "category": item.category,
                "justification": item.justification,
            }
            for item in request.items
        ],
        "total_estimated_cost": request.total_estimated_cost,
        "approval_history": [
            {
                "user": user_snapshot_to_response(entry.user),
                "action": entry.action,
                "timestamp": entry.timestamp.isoformat(),
                "comment": entry.comment,
            }
            for entry in request.approval_history
        ],
        "attachments": [
            {
                "id": attachment.id,
                "file_name": attachment.file_name,
                "mime_type": attachment.mime_type,
                "uploaded_by": user_snapshot_to_response(attachment.uploaded_by),
                "uploaded_at": attachment.uploaded_at.isoformat(),
                **({"file_data": attachment.file_data} if include_files else {}),
            }
            for attachment in request.attachments
        ],
        "invoice": invoice_to_response(request.invoice, include_file=include_files) if request.invoice else None,
        "created_at": request.created_at.isoformat() if request.created_at else None,
    }
    if can_act is not None:
        response["can_act"] = can_act
    return response
