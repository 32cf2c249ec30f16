from typing import Mapping, Optional, Protocol, Sequence

from app.catalog.domain.models import CatalogItem, Supplier


class CatalogRepository(Protocol):
    async def list_catalog_items(self) -> Sequence[CatalogItem]:
        ...

    async def get_catalog_items(self, keys: Sequence[str], for_update: bool = False) -> Mapping[str, CatalogItem]:
        """Catalog entries by normalized name; locks the rows when ``for_update``."""
        ...

    async def save_catalog_item(self, item: CatalogItem) -> None:
        ...

    async def list_suppliers(self, branch_id: Optional[str] = None) -> Sequence[Supplier]:
        ...

    async def get_supplier(self, key: str, for_update: bool = False) -> Optional[Supplier]:
        ...

    async def save_supplier(self, supplier: Supplier) -> None:
        ...

    async def commit(self) -> None:
        ...
