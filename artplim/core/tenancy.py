import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TenantScope:
    """Identity of the caller for one request.

    ``company_id`` is the tenant every query is filtered by; ``user_id`` is
    recorded as the creator of new entries.
    """

    company_id: uuid.UUID
    user_id: uuid.UUID
