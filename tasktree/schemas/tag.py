from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class TagCreate(BaseModel):
    name: str
    color: Optional[str] = None


class TagUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class TagResponse(BaseModel):
    id: str
    name: str
    color: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
