"""Authentication modes accepted by the approval service."""

from __future__ import annotations

from enum import Enum


class AuthMode(str, Enum):
    """How inbound callers are identified: Clerk sessions or a shared local token."""

    CLERK = "clerk"
    LOCAL = "local"
