import logging
import uuid
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlmodel import SQLModel

from ..core.errors import EntryNotFoundError, EntryStoreError, FinancialError, InvalidEntryStateError
from ..core.money import is_date_only, parse_timestamp
from ..core.security import get_tenant_scope, require_permission
from ..core.tenancy import TenantScope
from ..database import async_session_factory
from ..models.financial_entry import EntryStatus, EntryType
from ..repositories.financial_entries import FinancialEntryRepository
from ..schemas.financial import (
    CashFlowPoint,
    FinancialStats,
    SortField,
    SortOrder,
    TransactionCreate,
    TransactionFilters,
    TransactionPay,
    TransactionResponse,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/financial",
    tags=["financial"],
)


def get_entry_repository() -> FinancialEntryRepository:
    return FinancialEntryRepository(async_session_factory)


class Pagination(SQLModel):
    total: int
    total_pages: int
    page: int
    limit: int


class TransactionListOut(SQLModel):
    data: List[TransactionResponse]
    pagination: Pagination


def _http_error(e: FinancialError) -> HTTPException:
    if isinstance(e, EntryNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    if isinstance(e, InvalidEntryStateError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    logger.error("Financial operation failed: %s", e)
    if isinstance(e, EntryStoreError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def _date_param(name: str, value: Optional[str]):
    if value is None:
        return None
    try:
        return parse_timestamp(value).date() if is_date_only(value) else parse_timestamp(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {name}")


# ─────────────────────────────
#   ENTRIES
# ─────────────────────────────

@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("financial:create"))],
)
async def create_transaction(
    payload: TransactionCreate,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    """Create a PENDING entry for the caller's company."""
    try:
        return await repo.create_transaction(payload, scope)
    except FinancialError as e:
        raise _http_error(e)


@router.get(
    "/transactions",
    response_model=TransactionListOut,
    dependencies=[Depends(require_permission("financial:read"))],
)
async def list_transactions(
    type: Optional[EntryType] = None,
    status_: Optional[EntryStatus] = Query(default=None, alias="status"),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    min_amount: Optional[Decimal] = Query(default=None, ge=0),
    max_amount: Optional[Decimal] = Query(default=None, ge=0),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    sort_by: SortField = SortField.due_date,
    sort_order: SortOrder = SortOrder.desc,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    """
    List the company's entries.

    - Filters combine with AND; ``search`` matches description OR notes.
    - ``total`` counts every match regardless of the page.
    """
    try:
        filters = TransactionFilters(
            type=type,
            status=status_,
            start_date=start_date,
            end_date=end_date,
            min_amount=min_amount,
            max_amount=max_amount,
            search=search,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())

    try:
        result = await repo.find_transactions(filters, scope)
    except FinancialError as e:
        raise _http_error(e)

    return TransactionListOut(
        data=result.entries,
        pagination=Pagination(
            total=result.total,
            total_pages=result.total_pages,
            page=result.page,
            limit=result.limit,
        ),
    )


@router.get(
    "/transactions/{entry_id}",
    response_model=TransactionResponse,
    dependencies=[Depends(require_permission("financial:read"))],
)
async def get_transaction(
    entry_id: uuid.UUID,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    try:
        entry = await repo.find_transaction_by_id(entry_id, scope)
    except FinancialError as e:
        raise _http_error(e)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Entry not found")
    return entry


@router.patch(
    "/transactions/{entry_id}",
    response_model=TransactionResponse,
    dependencies=[Depends(require_permission("financial:update"))],
)
async def update_transaction(
    entry_id: uuid.UUID,
    payload: TransactionUpdate,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    """Partially update an entry; keys left out of the body keep their value."""
    if not payload.model_fields_set:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    try:
        return await repo.update_transaction(entry_id, payload, scope)
    except FinancialError as e:
        raise _http_error(e)


@router.post(
    "/transactions/{entry_id}/pay",
    response_model=TransactionResponse,
    dependencies=[Depends(require_permission("financial:update"))],
)
async def pay_transaction(
    entry_id: uuid.UUID,
    payload: TransactionPay,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    try:
        return await repo.pay_transaction(entry_id, payload, scope)
    except FinancialError as e:
        raise _http_error(e)


@router.delete(
    "/transactions/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("financial:delete"))],
)
async def delete_transaction(
    entry_id: uuid.UUID,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    try:
        await repo.delete_transaction(entry_id, scope)
    except FinancialError as e:
        raise _http_error(e)
    return None


# ─────────────────────────────
#   REPORTS
# ─────────────────────────────

@router.get(
    "/stats",
    response_model=FinancialStats,
    dependencies=[Depends(require_permission("financial:read"))],
)
async def get_stats(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    try:
        return await repo.get_stats(
            scope,
            _date_param("start_date", start_date),
            _date_param("end_date", end_date),
        )
    except FinancialError as e:
        raise _http_error(e)


@router.get(
    "/cash-flow",
    response_model=List[CashFlowPoint],
    dependencies=[Depends(require_permission("financial:read"))],
)
async def get_cash_flow(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    scope: TenantScope = Depends(get_tenant_scope),
    repo: FinancialEntryRepository = Depends(get_entry_repository),
):
    try:
        return await repo.get_cash_flow(
            scope,
            _date_param("start_date", start_date),
            _date_param("end_date", end_date),
        )
    except FinancialError as e:
        raise _http_error(e)
