from __future__ import annotations

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9._-]+$")
    password: str = Field(min_length=1, max_length=72)


class LoginResponse(BaseModel):
    token: str


class HealthResponse(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    """Error envelope shared by every endpoint.

    Clients parse one shape regardless of whether the failure came from auth,
    request validation or an unexpected server error.
    """

    error: str
    message: str
    request_id: str | None = None
    details: object | None = None
