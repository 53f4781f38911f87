from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, Field, ConfigDict, field_validator
from bson import ObjectId

from storybook_backend.models.common import PyObjectId

DEFAULT_CATEGORY_COLOR = "#6366f1"

# 'Book' categories show on the Read tab, 'Audio' ones on the Listen tab.
# Legacy categories have no content_type at all.
ContentType = Literal["Book", "Audio"]


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    color: str = DEFAULT_CATEGORY_COLOR
    icon: Optional[str] = None # Icon name or emoji
    content_type: Optional[ContentType] = "Book"

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    content_type: Optional[ContentType] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class Category(CategoryBase):
    id: PyObjectId = Field(alias="_id", default_factory=ObjectId)
    created_at: Optional[datetime] = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        json_schema_extra={
            "example": {
                "id": "60f1b0b3b3f3f3f3f3f3f3f3",
                "name": "Bedtime",
                "description": "Calm stories for the evening",
                "color": "#6366f1",
                "icon": "🌙",
                "content_type": "Book",
                "created_at": "2023-10-27T10:00:00.000Z",
                "updated_at": "2023-10-27T10:00:00.000Z"
            }
        }
    )
