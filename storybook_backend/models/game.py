from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from bson import ObjectId

from storybook_backend.models.common import PyObjectId

# Fields a page's web view reference resolves to (never the whole game record)
GAME_SUMMARY_PROJECTION = {"url": 1, "name": 1, "cover_image": 1, "game_type": 1}


class GameSummary(BaseModel):
    id: PyObjectId = Field(alias="_id")
    url: Optional[str] = None
    name: Optional[str] = None
    cover_image: Optional[str] = None
    game_type: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)


class GameCreate(BaseModel):
    name: str
    url: str
    cover_image: Optional[str] = None
    game_type: Optional[str] = None
    description: Optional[str] = None


class Game(GameCreate):
    id: PyObjectId = Field(alias="_id", default_factory=ObjectId)
    created_at: Optional[datetime] = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)
