from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Optional


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    PRECONDITION_FAILED = "precondition_failed"
    ALREADY_EXISTS = "already_exists"
    INVALID_INPUT = "invalid_input"


@dataclass
class Result:
    """Outcome of an engine operation.

    Domain failures are returned, not raised, so that callers can retry
    idempotent operations and map the kind onto their own transport.
    """
    ok: bool
    value: Any = None
    message: str = ""
    kind: Optional[FailureKind] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, value: Any = None, message: str = "", **details) -> "Result":
        return cls(ok=True, value=value, message=message, details=details)

    @classmethod
    def failure(cls, kind: FailureKind, reason: str, **details) -> "Result":
        return cls(ok=False, message=reason, kind=kind, details=details)

    @classmethod
    def not_found(cls, reason: str, **details) -> "Result":
        return cls.failure(FailureKind.NOT_FOUND, reason, **details)

    @classmethod
    def precondition_failed(cls, reason: str, **details) -> "Result":
        return cls.failure(FailureKind.PRECONDITION_FAILED, reason, **details)

    @classmethod
    def already_exists(cls, reason: str, **details) -> "Result":
        return cls.failure(FailureKind.ALREADY_EXISTS, reason, **details)

    @classmethod
    def invalid_input(cls, reason: str, **details) -> "Result":
        return cls.failure(FailureKind.INVALID_INPUT, reason, **details)

    def __bool__(self) -> bool:
        return self.ok

    def to_dict(self) -> dict:
        if self.ok:
            return {"message": self.message, **self.details}
        return {
            "error": self.message,
            "kind": self.kind.value,
            **self.details
        }
