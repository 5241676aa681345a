import os
import tempfile
import uuid

# Settings are read at import time, so the environment must be ready before artplim is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="artplim-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/api.db"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["ENVIRONMENT"] = "test"

import pytest

from artplim.core.tenancy import TenantScope
from artplim.database import build_engine, build_session_factory, create_schema
from artplim.repositories.financial_entries import FinancialEntryRepository
from artplim.schemas.financial import TransactionCreate


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path}/entries.db")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def repo(engine):
    return FinancialEntryRepository(build_session_factory(engine))


@pytest.fixture
def scope():
    return TenantScope(company_id=uuid.uuid4(), user_id=uuid.uuid4())


@pytest.fixture
def other_scope():
    return TenantScope(company_id=uuid.uuid4(), user_id=uuid.uuid4())


@pytest.fixture
def entry_data():
    def _make(**overrides):
        payload = {
            "type": "EXPENSE",
            "amount": "150.00",
            "description": "Vinyl roll",
            "due_date": "2024-01-10T00:00:00Z",
        }
        payload.update(overrides)
        return TransactionCreate.model_validate(payload)

    return _make
