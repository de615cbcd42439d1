"""Error taxonomy shared by the policy, the services and the HTTP surface.

Every error is an ``HTTPException`` so services can raise them directly and
the application's exception handler renders them as ``{"error": detail}``.
"""

from fastapi import HTTPException


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Insufficient permissions") -> None:
        super().__init__(status_code=403, detail=detail)


class ValidationError(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=400, detail=detail)


class InvalidReference(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=400, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(status_code=404, detail=detail)


class Conflict(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=400, detail=detail)


class TooManyRequests(HTTPException):
    def __init__(self, detail: str = "Too many requests. Try again later.") -> None:
        super().__init__(status_code=429, detail=detail)
