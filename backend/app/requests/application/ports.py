from typing import Optional, Protocol, Sequence

from app.identity.domain.models import Branch
from app.requests.domain.models import PurchaseRequest


class PurchaseRequestRepository(Protocol):
    async def get_branch(self, branch_id: str) -> Optional[Branch]:
        ...

    async def get_request(self, request_id: str) -> Optional[PurchaseRequest]:
        ...

    async def next_reference_number(self) -> int:
        ...

    async def add_request(self, request: PurchaseRequest) -> None:
        ...

    async def save_request(self, request: PurchaseRequest) -> None:
        """Persist the aggregate if nobody changed it since it was read.

        Compares ``request.version`` with the stored version, raises
        ConflictError on mismatch and bumps ``request.version`` on success.
        """
        ...

    async def list_requests(self) -> Sequence[PurchaseRequest]:
        ...

    async def list_invoice_numbers(self, branch_id: str) -> Sequence[str]:
        ...

    async def commit(self) -> None:
        ...
