from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Any, Dict, Union
from datetime import datetime
from bson import ObjectId

from storybook_backend.models.common import PyObjectId
from storybook_backend.models.game import GameSummary

# Feature-specific page fields are not declared on the model (extra="allow" keeps them).
# These are the values a new page gets when the client leaves them out.
PAGE_FEATURE_DEFAULTS: Dict[str, Any] = {
    "scroll_offset_x": 0,
    "scroll_offset_y": 0,
    "scroll_width": 100,
    "is_coloring_page": False,
    "coloring_end_modal_only": True,
    "video_sequence": [],
    "use_video_sequence": False,
    "image_sequence": [],
    "use_image_sequence": False,
    "image_sequence_duration": 3,
    "image_sequence_animation": "kenBurns",
}


class WebView(BaseModel):
    # Stored as the game's id string; list endpoints replace it with the game summary
    game_id: Optional[Union[GameSummary, str]] = None

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    @field_validator("game_id", mode="before")
    @classmethod
    def objectid_to_str(cls, v: Any) -> Any:
        # Older documents store the reference as an ObjectId
        return str(v) if isinstance(v, ObjectId) else v


class PageBase(BaseModel):
    content: Dict[str, Any] = Field(default_factory=dict) # Opaque payload (text, layout metadata)
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    text_boxes: List[Dict[str, Any]] = Field(default_factory=list)
    is_web_view_page: bool = False
    web_view: WebView = Field(default_factory=WebView)

    model_config = ConfigDict(extra="allow")


class PageCreate(PageBase):
    book_id: str # References Book.id (string representation of ObjectId)
    page_number: int = Field(..., ge=1)


class PageUpdate(BaseModel):
    page_number: Optional[int] = Field(None, ge=1)
    content: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    text_boxes: Optional[List[Dict[str, Any]]] = None
    is_web_view_page: Optional[bool] = None
    web_view: Optional[WebView] = None

    model_config = ConfigDict(extra="allow")


class Page(PageBase):
    id: PyObjectId = Field(alias="_id", default_factory=ObjectId)
    book_id: str
    page_number: int # Negative only while a reorder is in flight
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="allow",
        json_schema_extra={
            "example": {
                "id": "60f1b0b3b3f3f3f3f3f3f3f3",
                "book_id": "60c72b2f9b1d4b3b8c8b4567",
                "page_number": 1,
                "content": {"text": "Once upon a time..."},
                "image_url": "https://storage.googleapis.com/bucket/pages/1.png",
                "audio_url": None,
                "text_boxes": [],
                "is_web_view_page": True,
                "web_view": {
                    "game_id": {
                        "id": "60d0fe4f5311236168a109ca",
                        "url": "https://games.example.com/puzzle",
                        "name": "Puzzle",
                        "cover_image": None,
                        "game_type": "puzzle"
                    }
                },
                "created_at": "2023-10-27T10:00:00Z",
                "updated_at": "2023-10-27T10:05:00Z"
            }
        },
    )


class PageOrderItem(BaseModel):
    # Left untyped: each id is validated on its own so one bad entry doesn't sink the batch
    page_id: Any = None
    new_page_number: int = Field(..., ge=1)


class PageReorderRequest(BaseModel):
    book_id: Any
    page_order: List[PageOrderItem]
