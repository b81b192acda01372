"""Base model for persisted aggregates."""

import uuid
from typing import ClassVar

from pydantic import BaseModel, Field


class Aggregate(BaseModel):
    """
    A row/document keyed by UUID with a monotonically increasing version.

    version 0 means the aggregate has never been persisted.
    """
    KIND: ClassVar[str] = "aggregate"

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    version: int = 0
