from ..models.financial_entry import FinancialEntry
from ..schemas.financial import TransactionResponse

# Accounts, category colors, installments and payment methods have no storage
# yet; the response shape still carries them with fixed values.
UNCATEGORIZED = "Uncategorized"
DEFAULT_CATEGORY_COLOR = "#6B7280"
DEFAULT_PAYMENT_METHOD = "OTHER"
DEFAULT_REFERENCE_TYPE = "OTHER"


def map_entry_to_response(entry: FinancialEntry) -> TransactionResponse:
    return TransactionResponse(
        id=entry.id,
        type=entry.type,
        status=entry.status,
        category=entry.category,
        category_name=entry.category or UNCATEGORIZED,
        category_color=DEFAULT_CATEGORY_COLOR,
        account_id="",
        account_name="",
        amount=entry.amount,
        description=entry.description,
        due_date=entry.due_date,
        paid_date=entry.paid_date,
        notes=entry.notes,
        reference=entry.reference,
        reference_id=entry.reference,
        reference_type=DEFAULT_REFERENCE_TYPE,
        installments=1,
        current_installment=1,
        tags=[],
        attachments=[],
        payment_method=DEFAULT_PAYMENT_METHOD,
        user_id=entry.user_id,
        company_id=entry.company_id,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )
