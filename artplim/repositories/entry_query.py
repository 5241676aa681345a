"""Translate ``TransactionFilters`` into a SQL predicate, page and sort order.

The translation is pure: nothing here touches a session. The page query
and the count query are built from the same ``where`` list so the two
always describe the same rows.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from sqlalchemy import func, or_
from sqlmodel import col, select

from ..core.money import is_date_only, parse_timestamp
from ..core.tenancy import TenantScope
from ..models.financial_entry import FinancialEntry
from ..schemas.financial import SortField, SortOrder, TransactionFilters


SORT_COLUMNS = {
    SortField.due_date: FinancialEntry.due_date,
    SortField.paid_date: FinancialEntry.paid_date,
    SortField.amount: FinancialEntry.amount,
    SortField.description: FinancialEntry.description,
    SortField.created_at: FinancialEntry.created_at,
}


def tenant_clause(scope: TenantScope):
    """The one predicate every financial entry query starts from."""
    return col(FinancialEntry.company_id) == scope.company_id


@dataclass
class EntryQuery:
    where: List = field(default_factory=list)
    order_by: List = field(default_factory=list)
    offset: int = 0
    limit: int = 20

    def select_page(self):
        return (
            select(FinancialEntry)
            .where(*self.where)
            .order_by(*self.order_by)
            .offset(self.offset)
            .limit(self.limit)
        )

    def select_count(self):
        return select(func.count()).select_from(FinancialEntry).where(*self.where)


def _upper_bound(end):
    # A bare date covers the whole day: due_date < next midnight.
    if is_date_only(end):
        return col(FinancialEntry.due_date) < parse_timestamp(end) + timedelta(days=1)
    return col(FinancialEntry.due_date) <= parse_timestamp(end)


def due_date_range(start=None, end=None) -> List:
    clauses = []
    if start is not None:
        clauses.append(col(FinancialEntry.due_date) >= parse_timestamp(start))
    if end is not None:
        clauses.append(_upper_bound(end))
    return clauses


def build_entry_query(filters: TransactionFilters, scope: TenantScope) -> EntryQuery:
    where = [tenant_clause(scope)]

    if filters.type is not None:
        where.append(col(FinancialEntry.type) == filters.type)
    if filters.status is not None:
        where.append(col(FinancialEntry.status) == filters.status)

    where.extend(due_date_range(filters.start_date, filters.end_date))

    # 0 is a real bound here, so test for None rather than truthiness.
    if filters.min_amount is not None:
        where.append(col(FinancialEntry.amount) >= filters.min_amount)
    if filters.max_amount is not None:
        where.append(col(FinancialEntry.amount) <= filters.max_amount)

    if filters.search is not None:
        where.append(
            or_(
                col(FinancialEntry.description).icontains(filters.search, autoescape=True),
                col(FinancialEntry.notes).icontains(filters.search, autoescape=True),
            )
        )

    column = col(SORT_COLUMNS[filters.sort_by])
    primary = column.asc() if filters.sort_order == SortOrder.asc else column.desc()

    return EntryQuery(
        where=where,
        # id breaks ties so consecutive pages never overlap
        order_by=[primary, col(FinancialEntry.id).asc()],
        offset=(filters.page - 1) * filters.limit,
        limit=filters.limit,
    )
