from typing import Optional


class FinancialError(Exception):
    """Base error raised by the financial entry repository.

    Carries the failing operation and, for store failures, the original
    exception so callers can log it and map it to a response.
    """

    def __init__(self, message: str, operation: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.insert(0, f"[{self.operation}]")
        if self.cause is not None:
            parts.append(f"({self.cause})")
        return " ".join(parts)


class EntryNotFoundError(FinancialError):
    pass


class InvalidEntryStateError(FinancialError):
    pass


class EntryStoreError(FinancialError):
    pass
