from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class GroupCreate(BaseModel):
    name: str
    description: Optional[str] = None
    color: Optional[str] = None


class GroupUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    color: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
