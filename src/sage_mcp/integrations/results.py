"""Outcome types returned by the Sage gateway and the tool dispatch table.

Callers branch on `outcome.ok` instead of catching exceptions; the MCP
boundary turns a `Failure` into an error-flagged tool result.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    AUTH = "AuthError"
    REFRESH = "RefreshError"
    API = "ApiError"
    UNKNOWN_TOOL = "UnknownTool"
    INVALID_ARGUMENTS = "InvalidArguments"
    TRANSPORT = "TransportError"


@dataclass(frozen=True, slots=True)
class Success:
    value: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    kind: FailureKind
    message: str
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return False


RequestOutcome = Success | Failure
