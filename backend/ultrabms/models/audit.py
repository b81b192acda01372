"""
Ultra BMS - Audit Schemas

Append-only record of every committed status transition.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransitionRecord(BaseModel):
    """One committed status change of one aggregate."""
    model_config = ConfigDict(frozen=True)

    record_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    machine: str
    entity_id: uuid.UUID
    lease_account_id: Optional[uuid.UUID] = None
    from_state: str
    to_state: str
    trigger: str
    actor_id: Optional[uuid.UUID] = None
    recorded_at: datetime = Field(default_factory=_utcnow)
    context_data: dict = Field(default_factory=dict)
