# storybook_backend/models/book.py

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Literal
from datetime import datetime
from bson import ObjectId

from storybook_backend.models.common import PyObjectId

class BookBase(BaseModel):
    title: str
    description: Optional[str] = None
    author: Optional[str] = None
    cover_image: Optional[str] = None # URL to the cover in object storage
    category_id: Optional[str] = None # References Category.id (string representation of ObjectId)
    status: Literal["draft", "published"] = "draft"

class BookCreate(BookBase):
    pass

class BookUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    cover_image: Optional[str] = None
    category_id: Optional[str] = None
    status: Optional[Literal["draft", "published"]] = None

class Book(BookBase):
    # Use Field alias for MongoDB's _id, default_factory=ObjectId for new documents
    id: PyObjectId = Field(alias="_id", default_factory=ObjectId)

    # Use 'created_at' and 'updated_at' as per DB schema
    created_at: Optional[datetime] = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)

    # --- Pydantic V2 Configuration ---
    model_config = ConfigDict(
        populate_by_name=True, # Allow mapping _id to id
        arbitrary_types_allowed=True, # Needed for ObjectId
        json_schema_extra={
            "example": {
                "id": "60f1b0b3b3f3f3f3f3f3f3f3",
                "title": "The Sleepy Dragon",
                "description": "A bedtime story.",
                "author": "Jane Doe",
                "cover_image": "https://storage.googleapis.com/bucket/covers/dragon.png",
                "category_id": "60c72b2f9b1d4b3b8c8b4567",
                "status": "published",
                "created_at": "2023-10-27T10:00:00Z",
                "updated_at": "2023-10-27T10:05:00Z"
            }
        },
    )
