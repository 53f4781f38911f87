import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, status, Body, Path, Query
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from storybook_backend.db import mongodb as db
from storybook_backend.models.category import Category, CategoryCreate, CategoryUpdate, ContentType

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=List[Category], response_model_by_alias=False)
async def list_categories(
    content_type: Optional[ContentType] = Query(None, description="Only categories shown on this tab")
):
    """
    Lists categories by name. Filtering by 'Book' also returns legacy categories
    that were created before content_type existed.
    """
    logger.info(f"Received request to list categories (content_type={content_type})")
    category_filter = {}
    if content_type == "Book":
        category_filter["content_type"] = {"$in": ["Book", None]}
    elif content_type:
        category_filter["content_type"] = content_type

    try:
        categories = await db.get_categories(category_filter)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    return [Category.model_validate(doc) for doc in categories]


@router.post("/", response_model=Category, status_code=status.HTTP_201_CREATED, response_model_by_alias=False)
async def create_category(category: CategoryCreate = Body(...)):
    logger.info(f"Received request to create category: '{category.name}'")
    try:
        category_id = await db.save_category(category.model_dump())
        category_doc = await db.get_category(category_id) if category_id else None
    except DuplicateKeyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Category '{category.name}' already exists")
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")

    if not category_doc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create category")
    return Category.model_validate(category_doc)


@router.get("/{category_id}", response_model=Category, response_model_by_alias=False)
async def get_category_by_id(category_id: str = Path(..., description="The ID of the category")):
    if not ObjectId.is_valid(category_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid category ID format.")
    try:
        category_doc = await db.get_category(category_id)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not category_doc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return Category.model_validate(category_doc)


@router.put("/{category_id}", response_model=Category, response_model_by_alias=False)
async def update_existing_category(category_id: str, category_update: CategoryUpdate):
    if not ObjectId.is_valid(category_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid category ID format.")

    update_data = category_update.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No update data provided")

    try:
        updated = await db.update_category(category_id, update_data)
    except DuplicateKeyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Category '{update_data.get('name')}' already exists")
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return Category.model_validate(updated)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_category(category_id: str = Path(..., description="The ID of the category to delete")):
    logger.info(f"Received request to delete category with id: {category_id}")
    if not ObjectId.is_valid(category_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid category ID format.")
    try:
        deleted = await db.delete_category(category_id)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Category with id {category_id} not found")
    return None
