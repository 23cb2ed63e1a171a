from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ConversationOut(BaseModel):
    user_id: str
    state: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    user_name: Optional[str] = None
    user_number: Optional[str] = None


class ActivateRequest(BaseModel):
    user_name: Optional[str] = None
    user_number: Optional[str] = None


class ActivateResponse(BaseModel):
    user_id: str
    activated: bool
    previous_state: str
    state: str


class DeactivateRequest(BaseModel):
    finished: bool = False


class StateChangeResponse(BaseModel):
    user_id: str
    changed: bool
    state: Optional[str] = None
