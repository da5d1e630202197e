from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant", "system"]


class CalendarEvent(BaseModel):
    """Canonical calendar event; every other shape is adapted into this one."""

    model_config = ConfigDict(frozen=True)

    title: str
    start: str
    end: str = ""
    description: str = ""
    timezone: str = ""
    location: str = ""


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Role
    content: str
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
    calendar_event: Optional[CalendarEvent] = None

    def to_wire(self) -> Dict[str, str]:
        # Only role and content travel to the chat endpoint.
        return {"role": self.role, "content": self.content}


class CredentialMeta(BaseModel):
    prefix: str = ""
    suffix: str = ""
    length: int = 0


class ChatRequest(BaseModel):
    sessionId: str = ""
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    credential: str = ""
    credentialMeta: Optional[CredentialMeta] = None
    stream: bool = True
