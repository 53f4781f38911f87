from typing import Any, Annotated

from bson import ObjectId
from pydantic import BeforeValidator, PlainSerializer, WithJsonSchema

# Custom validator for ObjectId
def validate_objectid(v: Any) -> ObjectId:
    if isinstance(v, ObjectId):
        return v
    if isinstance(v, str) and ObjectId.is_valid(v):
        return ObjectId(v)
    raise ValueError('Invalid ObjectId')

# Custom serializer for ObjectId to string
def serialize_objectid(v: ObjectId) -> str:
    return str(v)

def coerce_id(raw: Any) -> str:
    """
    Normalizes an identifier sent by a client into a string.
    Mobile clients sometimes send a whole populated document ({"_id": ...}) where an id is expected.
    """
    if isinstance(raw, dict) and "_id" in raw:
        raw = raw["_id"]
    if raw is None:
        return ""
    return str(raw)

def is_valid_id(raw: Any) -> bool:
    """True for a 24-char hex string (or ObjectId / {"_id": ...} wrapping one)."""
    value = coerce_id(raw)
    return len(value) == 24 and ObjectId.is_valid(value)

# Use Annotated so every model handles ObjectId the same way (parse from str, dump as str)
PyObjectId = Annotated[
    ObjectId,
    BeforeValidator(validate_objectid),
    PlainSerializer(serialize_objectid, return_type=str),
    WithJsonSchema({"type": "string", "pattern": "^[0-9a-fA-F]{24}$"}),
]
