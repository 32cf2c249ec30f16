import json
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.catalog.application.ports import CatalogRepository
from app.catalog.domain.models import CatalogItem, SalesRepresentative, Supplier
from app.shared.application.locks import normalize_key
from app.shared.domain.errors import ConflictError
from database import (
    PriceCatalogItem,
    SalesRepresentative as SalesRepresentativeModel,
    Supplier as SupplierModel,
)

logger = logging.getLogger(__name__)


def _catalog_item(row: PriceCatalogItem) -> CatalogItem:
    return CatalogItem(
        name=row.name,
        category=row.category,
        unit=row.unit,
        estimated_cost=row.estimated_cost,
    )


class SqlAlchemyCatalogRepository(CatalogRepository):
    """Catalog items and suppliers, keyed by lower-cased name.

    Shares the session with the purchase request repository so an invoice
    commit writes catalog, supplier and request in one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_catalog_items(self) -> Sequence[CatalogItem]:
        result = await self._session.execute(
            select(PriceCatalogItem).order_by(PriceCatalogItem.name)
        )
        return [_catalog_item(row) for row in result.scalars().all()]

    async def get_catalog_items(self, keys: Sequence[str], for_update: bool = False) -> Mapping[str, CatalogItem]:
        if not keys:
            return {}
        query = select(PriceCatalogItem).where(PriceCatalogItem.name_key.in_(list(keys)))
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        return {row.name_key: _catalog_item(row) for row in result.scalars().all()}

    async def save_catalog_item(self, item: CatalogItem) -> None:
        result = await self._session.execute(
            select(PriceCatalogItem).where(PriceCatalogItem.name_key == item.key)
        )
        row = result.scalar_one_or_none()
        if row is None:
            self._session.add(
                PriceCatalogItem(
                    name=item.name,
                    name_key=item.key,
                    category=item.category,
                    unit=item.unit,
                    estimated_cost=item.estimated_cost,
                )
            )
            return

        row.category = item.category
        row.unit = item.unit
        row.estimated_cost = item.estimated_cost

    async def list_suppliers(self, branch_id: Optional[str] = None) -> Sequence[Supplier]:
        result = await self._session.execute(select(SupplierModel).order_by(SupplierModel.name))
        suppliers = await self._hydrate(result.scalars().all())
        if branch_id:
            suppliers = [supplier for supplier in suppliers if supplier.serves(branch_id)]
        return suppliers

    async def get_supplier(self, key: str, for_update: bool = False) -> Optional[Supplier]:
        query = select(SupplierModel).where(SupplierModel.name_key == normalize_key(key))
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return (await self._hydrate([row]))[0]

    async def save_supplier(self, supplier: Supplier) -> None:
        result = await self._session.execute(
            select(SupplierModel).where(SupplierModel.name_key == supplier.key)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = SupplierModel(name=supplier.name, name_key=supplier.key)
            self._session.add(row)

        row.category = supplier.category
        row.contact = supplier.contact
        row.branch_ids = json.dumps(list(supplier.branch_ids))
        row.website = supplier.website
        row.notes = supplier.notes
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(f"Supplier '{supplier.name}' rejected: {exc.orig}")
            raise ConflictError("Supplier was created concurrently, please retry")

        await self._session.execute(
            delete(SalesRepresentativeModel).where(SalesRepresentativeModel.supplier_id == row.id)
        )
        reps = [
            {"supplier_id": row.id, "name": rep.name, "contact": rep.contact, "rep_index": index}
            for index, rep in enumerate(supplier.representatives)
        ]
        if reps:
            await self._session.execute(insert(SalesRepresentativeModel), reps)

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            logger.warning(f"Catalog commit rejected: {exc.orig}")
            raise ConflictError("A concurrent catalog change conflicted with this one, please retry")

    async def _hydrate(self, rows: Sequence[SupplierModel]) -> List[Supplier]:
        supplier_ids = [row.id for row in rows]
        reps_by_supplier: Dict[str, List[SalesRepresentative]] = {}
        if supplier_ids:
            reps_result = await self._session.execute(
                select(SalesRepresentativeModel)
                .where(SalesRepresentativeModel.supplier_id.in_(supplier_ids))
                .order_by(SalesRepresentativeModel.supplier_id, SalesRepresentativeModel.rep_index)
            )
            for rep in reps_result.scalars().all():
                reps_by_supplier.setdefault(rep.supplier_id, []).append(
                    SalesRepresentative(name=rep.name, contact=rep.contact)
                )

        return [
            Supplier(
                id=row.id,
                name=row.name,
                category=row.category,
                contact=row.contact,
                representatives=tuple(reps_by_supplier.get(row.id, [])),
                branch_ids=tuple(json.loads(row.branch_ids or "[]")),
                website=row.website,
                notes=row.notes,
            )
            for row in rows
        ]
