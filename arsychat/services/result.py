from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

BACKEND_UNAVAILABLE = "backend_unavailable"
EMPTY_REPLY = "empty_reply"
NOT_CONFIGURED = "not_configured"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def is_error(self, code: str) -> bool:
        return not self.ok and self.error_code == code
