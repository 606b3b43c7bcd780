"""Pydantic models for the persisted memory document."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from swiper.models.content import Content


class SessionDescriptor(BaseModel):
    """A registered chat session, restored at startup."""
    model_config = ConfigDict(populate_by_name=True)

    session_type: str = Field(alias="sessionType")
    session_id: str = Field(alias="sessionId")


class Memory(BaseModel):
    """Root memory file structure."""
    model_config = ConfigDict(extra="ignore")

    monitored: list[Content] = Field(default_factory=list)
    queued: list[Content] = Field(default_factory=list)
    sessions: list[SessionDescriptor] = Field(default_factory=list)

    def to_object(self) -> dict:
        return {
            "monitored": [item.to_object() for item in self.monitored],
            "queued": [item.to_object() for item in self.queued],
            "sessions": [s.model_dump(by_alias=True) for s in self.sessions],
        }
