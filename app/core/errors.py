from typing import Optional


class LedgerError(Exception):
    """Base class for errors the ledger reports back to its callers."""

    status_code = 400
    public = True

    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.details = list(details) if details else []

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    status_code = 400


class UnrecognizedFormat(ValidationError):
    pass


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    status_code = 409


class PersistenceError(LedgerError):
    status_code = 500
    public = False

    def to_dict(self) -> dict:
        return {"success": False, "error": "Storage failure, try again later."}


__all__ = [
    "ConflictError",
    "LedgerError",
    "NotFoundError",
    "PersistenceError",
    "UnrecognizedFormat",
    "ValidationError",
]
