"""
Exception taxonomy shared by the service layer and the API.

Services raise these; `main.py` turns them into problem-details responses
(`{"title", "detail", "status"}`).
"""
from typing import Optional


class ApiException(Exception):
    status_code = 500
    default_title = "Internal server error"

    def __init__(self, detail: str, title: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.title = title or self.default_title

    def to_problem(self) -> dict:
        return problem(self.title, self.detail, self.status_code)


class BadRequestError(ApiException):
    status_code = 400
    default_title = "Validation failed"


class UnauthorizedError(ApiException):
    status_code = 401
    default_title = "Authentication failed"


class ForbiddenError(ApiException):
    status_code = 403
    default_title = "Forbidden"


class NotFoundError(ApiException):
    status_code = 404
    default_title = "Not found"


class ConflictError(ApiException):
    status_code = 409
    default_title = "Conflict"


def problem(title: str, detail: str, status: int) -> dict:
    return {"title": title, "detail": detail, "status": status}
