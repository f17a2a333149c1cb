# ============================================================================
# SANDBOX USER MODEL
# ============================================================================
# STATUS: Core model - Identity resolved for a lease owner
# PURPOSE: What the access collaborator returns for an email address
# CREATED: 06 OCT 2026
# ============================================================================
"""Sandbox user as resolved by the identity/access collaborator."""

from typing import List, Optional

from pydantic import BaseModel, Field


class SandboxUser(BaseModel):
    """A user known to the identity store."""

    model_config = {"frozen": True}

    email: str
    user_id: str = Field(description="Identity store principal id")
    display_name: Optional[str] = None
    user_name: Optional[str] = None
    roles: List[str] = Field(default_factory=list)


__all__ = ["SandboxUser"]
