import asyncio
import logging
import math
import uuid
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col, select

from ..core.errors import EntryNotFoundError, EntryStoreError, InvalidEntryStateError
from ..core.money import to_decimal, to_wire, utcnow
from ..core.tenancy import TenantScope
from ..models.financial_entry import DEFAULT_CATEGORY, EntryStatus, EntryType, FinancialEntry
from ..schemas.financial import (
    CashFlowPoint,
    CategoryTotal,
    FinancialStats,
    TransactionCreate,
    TransactionFilters,
    TransactionPage,
    TransactionPay,
    TransactionResponse,
    TransactionUpdate,
)
from .entry_query import EntryQuery, build_entry_query, due_date_range, tenant_clause
from .mapping import UNCATEGORIZED, map_entry_to_response

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("artplim.audit")

ZERO = Decimal("0.00")
PAYABLE_STATUSES = {EntryStatus.PENDING, EntryStatus.OVERDUE}
TOP_CATEGORIES = 5

DateBound = Optional[Union[date, datetime, str]]


class FinancialEntryRepository:
    """Tenant-scoped persistence for financial entries.

    Every query is built on ``tenant_clause(scope)``; an entry belonging to
    another company behaves exactly like an entry that does not exist.
    Store failures are rolled back and re-raised as ``EntryStoreError``.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    # ─────────────────────────────
    #   HELPERS
    # ─────────────────────────────

    @staticmethod
    async def _get_scoped(session, entry_id: uuid.UUID, scope: TenantScope) -> Optional[FinancialEntry]:
        stmt = select(FinancialEntry).where(
            tenant_clause(scope),
            col(FinancialEntry.id) == entry_id,
        )
        result = await session.exec(stmt)
        return result.first()

    @staticmethod
    def _store_error(operation: str, message: str, error: SQLAlchemyError, scope: TenantScope) -> EntryStoreError:
        logger.error("%s failed for company=%s: %s", operation, scope.company_id, error)
        return EntryStoreError(message, operation=operation, cause=error)

    @staticmethod
    def _audit(action: str, entry_id: uuid.UUID, scope: TenantScope, **extra):
        audit_logger.info(
            "user=%s company=%s action=%s entry=%s %s",
            scope.user_id,
            scope.company_id,
            action,
            entry_id,
            " ".join(f"{k}={v}" for k, v in extra.items()),
        )

    @staticmethod
    def _check_paid_date(paid_date: Optional[datetime], created_at: datetime, operation: str):
        if paid_date is not None and paid_date < created_at:
            raise InvalidEntryStateError(
                "paid_date cannot be earlier than the entry creation time",
                operation=operation,
            )

    async def _fetch_page(self, query: EntryQuery) -> List[FinancialEntry]:
        async with self._session_factory() as session:
            result = await session.exec(query.select_page())
            return list(result.all())

    async def _count(self, query: EntryQuery) -> int:
        async with self._session_factory() as session:
            result = await session.exec(query.select_count())
            return int(result.one())

    async def _load_window(self, scope: TenantScope, start: DateBound, end: DateBound) -> List[FinancialEntry]:
        stmt = (
            select(FinancialEntry)
            .where(
                tenant_clause(scope),
                col(FinancialEntry.status) != EntryStatus.CANCELLED,
                *due_date_range(start, end),
            )
            .order_by(col(FinancialEntry.due_date).asc())
        )
        async with self._session_factory() as session:
            result = await session.exec(stmt)
            return list(result.all())

    # ─────────────────────────────
    #   CRUD
    # ─────────────────────────────

    async def create_transaction(self, data: TransactionCreate, scope: TenantScope) -> TransactionResponse:
        now = utcnow()
        self._check_paid_date(data.paid_date, now, "create_transaction")
        entry = FinancialEntry(
            id=uuid.uuid4(),
            company_id=scope.company_id,
            user_id=scope.user_id,
            type=data.type,
            status=EntryStatus.PENDING,
            category=data.category if data.category is not None else DEFAULT_CATEGORY,
            amount=data.amount,
            description=data.description,
            due_date=data.due_date,
            paid_date=data.paid_date,
            notes=data.notes,
            reference=data.reference,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as session:
            try:
                session.add(entry)
                await session.commit()
                await session.refresh(entry)
            except SQLAlchemyError as e:
                await session.rollback()
                raise self._store_error("create_transaction", "failed to create entry", e, scope) from e

        self._audit("create", entry.id, scope, type=entry.type.value, amount=to_wire(entry.amount))
        return map_entry_to_response(entry)

    async def find_transaction_by_id(self, entry_id: uuid.UUID, scope: TenantScope) -> Optional[TransactionResponse]:
        async with self._session_factory() as session:
            try:
                entry = await self._get_scoped(session, entry_id, scope)
            except SQLAlchemyError as e:
                raise self._store_error("find_transaction_by_id", "failed to fetch entry", e, scope) from e

        return map_entry_to_response(entry) if entry is not None else None

    async def find_transactions(self, filters: TransactionFilters, scope: TenantScope) -> TransactionPage:
        """Return one page of matching entries plus the total match count.

        The page and the count run concurrently on separate sessions without
        a shared snapshot, so ``total`` is advisory while other requests write.
        """
        query = build_entry_query(filters, scope)
        # Both statements always finish; the first failure is the one reported.
        entries, total = await asyncio.gather(self._fetch_page(query), self._count(query), return_exceptions=True)
        failure = next((r for r in (entries, total) if isinstance(r, BaseException)), None)
        if isinstance(failure, SQLAlchemyError):
            raise self._store_error("find_transactions", "failed to list entries", failure, scope) from failure
        if failure is not None:
            raise failure

        return TransactionPage(
            entries=[map_entry_to_response(e) for e in entries],
            total=total,
            total_pages=math.ceil(total / filters.limit),
            page=filters.page,
            limit=filters.limit,
        )

    async def update_transaction(
        self,
        entry_id: uuid.UUID,
        patch: TransactionUpdate,
        scope: TenantScope,
    ) -> TransactionResponse:
        changes = patch.changes()

        async with self._session_factory() as session:
            try:
                entry = await self._get_scoped(session, entry_id, scope)
                if entry is None:
                    raise EntryNotFoundError("entry not found", operation="update_transaction")

                if "paid_date" in changes:
                    self._check_paid_date(changes["paid_date"], entry.created_at, "update_transaction")

                # Status is not validated against the current one; any transition is accepted.
                for name, value in changes.items():
                    setattr(entry, name, value)
                entry.updated_at = utcnow()

                session.add(entry)
                await session.commit()
                await session.refresh(entry)
            except SQLAlchemyError as e:
                await session.rollback()
                raise self._store_error("update_transaction", "failed to update entry", e, scope) from e

        self._audit("update", entry.id, scope, fields=",".join(sorted(changes)))
        return map_entry_to_response(entry)

    async def pay_transaction(
        self,
        entry_id: uuid.UUID,
        payment: TransactionPay,
        scope: TenantScope,
    ) -> TransactionResponse:
        """Settle an entry: mark it PAID with its payment date.

        Only PENDING or OVERDUE entries can be settled.
        """
        async with self._session_factory() as session:
            try:
                entry = await self._get_scoped(session, entry_id, scope)
                if entry is None:
                    raise EntryNotFoundError("entry not found", operation="pay_transaction")
                if entry.status not in PAYABLE_STATUSES:
                    raise InvalidEntryStateError(
                        f"entry cannot be paid from status {entry.status.value}",
                        operation="pay_transaction",
                    )

                now = utcnow()
                paid_date = payment.paid_date or now
                self._check_paid_date(paid_date, entry.created_at, "pay_transaction")

                entry.status = EntryStatus.PAID
                entry.paid_date = paid_date
                if payment.notes is not None:
                    entry.notes = f"{entry.notes}\n{payment.notes}" if entry.notes else payment.notes
                entry.updated_at = now

                session.add(entry)
                await session.commit()
                await session.refresh(entry)
            except SQLAlchemyError as e:
                await session.rollback()
                raise self._store_error("pay_transaction", "failed to pay entry", e, scope) from e

        self._audit("pay", entry.id, scope, paid_date=entry.paid_date.isoformat())
        return map_entry_to_response(entry)

    async def delete_transaction(self, entry_id: uuid.UUID, scope: TenantScope) -> None:
        async with self._session_factory() as session:
            try:
                entry = await self._get_scoped(session, entry_id, scope)
                if entry is None:
                    raise EntryNotFoundError("entry not found", operation="delete_transaction")
                await session.delete(entry)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise self._store_error("delete_transaction", "failed to delete entry", e, scope) from e

        self._audit("delete", entry_id, scope)

    # ─────────────────────────────
    #   STATISTICS
    # ─────────────────────────────

    async def get_stats(self, scope: TenantScope, start: DateBound = None, end: DateBound = None) -> FinancialStats:
        try:
            entries = await self._load_window(scope, start, end)
        except SQLAlchemyError as e:
            raise self._store_error("get_stats", "failed to compute statistics", e, scope) from e

        totals: Dict[tuple, Decimal] = defaultdict(lambda: ZERO)
        by_category: Dict[EntryType, Dict[str, Decimal]] = {EntryType.INCOME: defaultdict(lambda: ZERO),
                                                            EntryType.EXPENSE: defaultdict(lambda: ZERO)}
        month_start = utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        this_month = {EntryType.INCOME: ZERO, EntryType.EXPENSE: ZERO}
        entries_this_month = 0

        for entry in entries:
            amount = to_decimal(entry.amount)
            totals[(entry.type, entry.status)] += amount
            by_category[entry.type][entry.category or UNCATEGORIZED] += amount
            if entry.created_at >= month_start:
                entries_this_month += 1
                this_month[entry.type] += amount

        total_income = totals[(EntryType.INCOME, EntryStatus.PAID)]
        total_expense = totals[(EntryType.EXPENSE, EntryStatus.PAID)]

        return FinancialStats(
            total_income=total_income,
            total_expense=total_expense,
            net_income=total_income - total_expense,
            pending_income=totals[(EntryType.INCOME, EntryStatus.PENDING)],
            pending_expense=totals[(EntryType.EXPENSE, EntryStatus.PENDING)],
            overdue_income=totals[(EntryType.INCOME, EntryStatus.OVERDUE)],
            overdue_expense=totals[(EntryType.EXPENSE, EntryStatus.OVERDUE)],
            entries_this_month=entries_this_month,
            income_this_month=this_month[EntryType.INCOME],
            expense_this_month=this_month[EntryType.EXPENSE],
            top_income_categories=_top_categories(by_category[EntryType.INCOME]),
            top_expense_categories=_top_categories(by_category[EntryType.EXPENSE]),
        )

    async def get_cash_flow(self, scope: TenantScope, start: DateBound = None, end: DateBound = None) -> List[CashFlowPoint]:
        try:
            entries = await self._load_window(scope, start, end)
        except SQLAlchemyError as e:
            raise self._store_error("get_cash_flow", "failed to compute cash flow", e, scope) from e

        days: Dict[date, Dict[EntryType, Decimal]] = {}
        for entry in entries:
            bucket = days.setdefault(entry.due_date.date(), {EntryType.INCOME: ZERO, EntryType.EXPENSE: ZERO})
            bucket[entry.type] += to_decimal(entry.amount)

        points = []
        cumulative = ZERO
        for day in sorted(days):
            income = days[day][EntryType.INCOME]
            expense = days[day][EntryType.EXPENSE]
            balance = income - expense
            cumulative += balance
            points.append(
                CashFlowPoint(
                    day=day,
                    income=income,
                    expense=expense,
                    balance=balance,
                    cumulative_balance=cumulative,
                )
            )
        return points


def _top_categories(amounts: Dict[str, Decimal]) -> List[CategoryTotal]:
    grand_total = sum(amounts.values(), ZERO)
    ranked = sorted(amounts.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_CATEGORIES]
    return [
        CategoryTotal(
            category_name=name,
            amount=amount,
            percentage=to_decimal(amount * 100 / grand_total) if grand_total > 0 else ZERO,
        )
        for name, amount in ranked
    ]
