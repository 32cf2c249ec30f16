"""
PostgreSQL Catalog Routes - price catalog, supplier registry and AI supplier suggestions
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_postgres_session, User
from app.catalog.domain.models import Supplier
from app.catalog.infrastructure.sqlalchemy_repository import SqlAlchemyCatalogRepository
from app.insights.application.use_cases import (
    SuggestionItem,
    SupplierSuggestionQuery,
    SupplierSuggestionUseCase,
)
from app.settings import settings
from app.shared.domain.errors import DomainError
from app.shared.infrastructure.gemini_client import get_gemini_client
from routes.pg_auth_routes import get_current_user_pg, to_user_summary
from routes.pg_errors import to_http_exception

# Create router
pg_catalog_router = APIRouter(prefix="/api/pg", tags=["PostgreSQL Catalog"])


# ==================== PYDANTIC MODELS ====================

class SuggestionItemData(BaseModel):
    name: str
    category: str = ""
    quantity: int = 1


class SupplierSuggestionRequest(BaseModel):
    branch_id: str
    items: List[SuggestionItemData]


def supplier_to_response(supplier: Supplier) -> dict:
    return {
        "id": supplier.id,
        "name": supplier.name,
        "category": supplier.category,
        "contact": supplier.contact,
        "sales_representatives": [
            {"name": rep.name, "contact": rep.contact} for rep in supplier.representatives
        ],
        "branch_ids": list(supplier.branch_ids),
        "website": supplier.website,
        "notes": supplier.notes,
    }


# ==================== CATALOG ROUTES ====================

@pg_catalog_router.get("/catalog")
async def get_catalog_items(
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Catalog items; prices only move down through confirmed invoices"""
    items = await SqlAlchemyCatalogRepository(session).list_catalog_items()
    if search and search.strip():
        term = search.strip().lower()
        items = [item for item in items if term in item.name.lower() or term in item.category.lower()]
    return [
        {
            "name": item.name,
            "category": item.category,
            "unit": item.unit,
            "estimated_cost": item.estimated_cost,
        }
        for item in items
    ]


@pg_catalog_router.get("/suppliers")
async def get_suppliers(
    branch_id: Optional[str] = None,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    suppliers = await SqlAlchemyCatalogRepository(session).list_suppliers(branch_id=branch_id)
    return [supplier_to_response(supplier) for supplier in suppliers]


@pg_catalog_router.post("/suppliers/suggestions")
async def suggest_suppliers(
    suggestion_data: SupplierSuggestionRequest,
    current_user: User = Depends(get_current_user_pg),
    session: AsyncSession = Depends(get_postgres_session)
):
    """Advisory ranking of the branch's suppliers for the given items"""
    use_case = SupplierSuggestionUseCase(
        catalog=SqlAlchemyCatalogRepository(session),
        advisor=get_gemini_client(),
        timeout=settings.ai_timeout_seconds,
    )
    query = SupplierSuggestionQuery(
        branch_id=suggestion_data.branch_id,
        items=tuple(
            SuggestionItem(name=item.name, category=item.category, quantity=item.quantity)
            for item in suggestion_data.items
        ),
    )
    try:
        suggestions = await use_case.execute(query, to_user_summary(current_user))
    except DomainError as exc:
        raise to_http_exception(exc)

    return [
        {"supplier_name": s.supplier_name, "justification": s.justification}
        for s in suggestions
    ]
