"""ABOUTME: Result values shared by the session and two-factor services
ABOUTME: Expected failures come back as data, so callers handle every branch explicitly"""

from dataclasses import dataclass


@dataclass(slots=True, kw_only=True)
class OperationResult:
    success: bool
    message: str = ""
    error: str = ""
    count: int = 0

    @classmethod
    def ok(cls, message: str = "", count: int = 0) -> "OperationResult":
        return cls(success=True, message=message, count=count)

    @classmethod
    def failed(cls, error: str, message: str = "") -> "OperationResult":
        return cls(success=False, error=error, message=message or error)
