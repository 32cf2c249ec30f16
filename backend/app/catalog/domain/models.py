from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from app.shared.application.locks import normalize_key

UNCATEGORIZED = "Uncategorized"
DEFAULT_SUPPLIER_CATEGORY = "General"


@dataclass(frozen=True)
class CatalogItem:
    name: str
    category: str
    unit: str
    estimated_cost: float

    @property
    def key(self) -> str:
        return normalize_key(self.name)

    def ratchet_down(self, price: float) -> "CatalogItem":
        """Return the item with the lower of the two prices; never raises it."""
        if price < self.estimated_cost:
            return replace(self, estimated_cost=price)
        return self


@dataclass(frozen=True)
class SalesRepresentative:
    name: str
    contact: str

    def duplicates(self, other: "SalesRepresentative") -> bool:
        return (
            self.name.strip().lower() == other.name.strip().lower()
            or self.contact == other.contact
        )


@dataclass(frozen=True)
class Supplier:
    name: str
    category: str = DEFAULT_SUPPLIER_CATEGORY
    contact: str = ""
    representatives: Tuple[SalesRepresentative, ...] = ()
    branch_ids: Tuple[str, ...] = ()
    website: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[str] = field(default=None, compare=False)

    @property
    def key(self) -> str:
        return normalize_key(self.name)

    def serves(self, branch_id: str) -> bool:
        return branch_id in self.branch_ids

    def with_branch(self, branch_id: Optional[str]) -> "Supplier":
        if not branch_id or branch_id in self.branch_ids:
            return self
        return replace(self, branch_ids=self.branch_ids + (branch_id,))

    def with_representative(self, rep: Optional[SalesRepresentative]) -> "Supplier":
        # Reps without both a name and a contact are not worth recording
        if rep is None or not rep.name.strip() or not rep.contact.strip():
            return self
        if any(existing.duplicates(rep) for existing in self.representatives):
            return self
        return replace(self, representatives=self.representatives + (rep,))


@dataclass(frozen=True)
class SupplierSuggestion:
    supplier_name: str
    justification: str
