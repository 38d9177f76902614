"""ServiceResult and ServiceError — the contract every service returns.

INVARIANT: All service-layer methods return ServiceResult. Fatal problems
become ``ok=False`` with a ServiceError; per-item problems that do not stop
the operation go into ``warnings`` or the operation's own data.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult.

    Attributes:
        code: Stable machine-readable code (e.g. ``"MISSING_ENV"``).
        message: Operator-facing explanation, including the remedy when known.
        detail: Extra context such as the failed stage or command output.
    """

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"render_config"``).
        data: Operation-specific payload.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timings, counts).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None


def failure(
    op: str,
    code: str,
    message: str,
    *,
    data: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
    **detail: Any,
) -> ServiceResult:
    """Shorthand for an ``ok=False`` result."""
    return ServiceResult(
        ok=False,
        op=op,
        data=data or {},
        warnings=warnings or [],
        error=ServiceError(code=code, message=message, detail=detail),
    )
