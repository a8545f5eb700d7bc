"""Demo business logic: arithmetic and a synthesized user lookup."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, ValidationError

from obsdemo._errors import ArithmeticOverflowError, DivisionByZeroError, InvalidInputError


class CalculateRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    a: float
    b: float


class CalculateResponse(BaseModel):
    result: float
    operation: str


class UserRecord(BaseModel):
    id: int
    name: str
    email: str


class HealthResponse(BaseModel):
    status: str
    service: str


def parse_calculation(body: bytes) -> CalculateRequest:
    """Parse a ``{"a": number, "b": number}`` body or raise InvalidInputError."""
    try:
        return CalculateRequest.model_validate_json(body or b"{}")
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidInputError(f"invalid calculation request: {problems}") from exc


def _finite(value: float, operation: str) -> float:
    if not math.isfinite(value):
        raise ArithmeticOverflowError(f"{operation} result is out of range")
    return value


def add(a: float, b: float) -> float:
    return _finite(a + b, "addition")


def divide(a: float, b: float) -> float:
    if b == 0:
        raise DivisionByZeroError("Cannot divide by zero")
    return _finite(a / b, "division")


def parse_user_id(raw: str) -> int:
    if not raw.isascii() or not raw.isdigit():
        raise InvalidInputError(f"user id must be a non-negative integer, got {raw!r}")
    return int(raw)


def lookup_user(user_id: int) -> UserRecord:
    """Derive a user record from its id. Same id, same record."""
    return UserRecord(
        id=user_id,
        name=f"User {user_id}",
        email=f"user{user_id}@example.com",
    )
