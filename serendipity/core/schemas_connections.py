"""Pydantic schemas for notebook entries and discovered connections."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntryType(str, Enum):
    VOICE_NOTE = "voice_note"
    OBSERVATION = "observation"
    MEASUREMENT = "measurement"
    PROTOCOL_STEP = "protocol_step"
    ANNOTATION = "annotation"
    HYPOTHESIS = "hypothesis"
    ANOMALY = "anomaly"
    IDEA = "idea"


class ConnectionType(str, Enum):
    PATTERN = "pattern"
    CONTRADICTION = "contradiction"
    SUPPORTS = "supports"
    REMINDS_OF = "reminds_of"
    SAME_PHENOMENON = "same_phenomenon"
    LITERATURE_LINK = "literature_link"
    CAUSAL = "causal"
    METHODOLOGICAL = "methodological"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


# ============================================================================
# Entries
# ============================================================================


class Entry(BaseModel):
    """A research observation as read from the entry store."""

    model_config = ConfigDict(extra="ignore")

    id: str
    content: str | None = None
    entry_type: EntryType = EntryType.OBSERVATION
    tags: list[str] = Field(default_factory=list)
    project_id: str | None = None
    created_at: datetime | None = None

    @field_validator("id", "project_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if isinstance(value, UUID) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value: Any) -> Any:
        # text[] columns may hold NULL elements
        return [tag for tag in value or [] if tag is not None]


# ============================================================================
# Connections
# ============================================================================


class ConnectionCandidate(BaseModel):
    """One relationship proposed by the model, not yet admitted.

    `type` is free-form and `confidence` unclamped until the admission filter
    has run.
    """

    model_config = ConfigDict(extra="ignore")

    source_entry_id: str
    target_entry_id: str
    type: str = ConnectionType.PATTERN.value
    headline: str | None = None
    reasoning: str = ""
    investigation: str | None = None
    confidence: float

    @field_validator("source_entry_id", "target_entry_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, UUID)):
            return str(value)
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        if value is None:
            return ConnectionType.PATTERN.value
        return str(value)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> Any:
        return "" if value is None else value


class ConnectionRow(BaseModel):
    """A connection ready to be written to the store."""

    source_entry_id: str
    target_entry_id: str
    connection_type: ConnectionType
    reasoning: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    status: ConnectionStatus = ConnectionStatus.PENDING

    def to_insert(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# ============================================================================
# API request / response bodies
# ============================================================================


class AutoConnectRequest(BaseModel):
    entry_id: UUID = Field(..., description="Newly created entry to connect")


class BulkConnectRequest(BaseModel):
    project_id: UUID = Field(..., description="Project to re-scan")


class SuggestConnectionsRequest(BaseModel):
    entry_id: UUID = Field(..., description="Entry to preview suggestions for")


class ConnectionsFoundResponse(BaseModel):
    connections_found: int = Field(..., ge=0)
