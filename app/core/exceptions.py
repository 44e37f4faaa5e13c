from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status
from fastapi.responses import JSONResponse


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    SIGNATURE = "signature"
    CONFIGURATION = "configuration"
    IDENTITY = "identity"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SIGNATURE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFIGURATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.IDENTITY: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UPSTREAM: status.HTTP_400_BAD_REQUEST,
}


@dataclass
class ServiceError:
    """A handler failure, classified so the router can pick a status code"""
    kind: ErrorKind
    message: str

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


@dataclass
class ServiceResult:
    """Outcome of a handler: either data for a 200 response or an error"""
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ServiceError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> "ServiceResult":
        return cls(data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "ServiceResult":
        return cls(error=ServiceError(kind=kind, message=message))


def to_response(result: ServiceResult) -> JSONResponse:
    """Map a handler result onto the HTTP response"""
    if result.success:
        return JSONResponse(content=result.data, status_code=status.HTTP_200_OK)
    return JSONResponse(
        content={"error": result.error.message},
        status_code=result.error.status_code
    )
