import copy
import logging
from typing import List

from fastapi import APIRouter, HTTPException, status, Path, Body, Response
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from storybook_backend.db import mongodb as db
from storybook_backend.models.page import (
    Page,
    PageCreate,
    PageUpdate,
    PageReorderRequest,
    PAGE_FEATURE_DEFAULTS,
)
from storybook_backend.services.page_order import (
    InvalidPageOrder,
    PageOrderConflict,
    book_locks,
    reorder_pages,
    repair_placeholders,
    result_headers,
)
from storybook_backend.services.page_query import list_pages_for_book, resolve_game_references

logger = logging.getLogger(__name__)
router = APIRouter()

# Fields a PUT may not touch: a page never changes owner
READ_ONLY_PAGE_FIELDS = ("id", "_id", "book_id", "created_at", "updated_at")


@router.get("/book/{book_id}", response_model=List[Page], response_model_by_alias=False)
async def list_pages(book_id: str = Path(..., description="The ID of the book (string ObjectId)")):
    """
    Lists the pages of a book in page_number order.
    A malformed book ID returns an empty list rather than an error.
    """
    logger.info(f"Received request to list pages for book_id: {book_id}")
    try:
        pages = await list_pages_for_book(book_id)
        return [Page.model_validate(page) for page in pages]
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error fetching pages for book {book_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error fetching pages: {e}")


@router.post("/", response_model=Page, status_code=status.HTTP_201_CREATED, response_model_by_alias=False)
async def create_page(page: PageCreate = Body(...)):
    """
    Adds a page to a book at the page_number given by the caller.
    """
    logger.info(f"Received request to create page {page.page_number} for book_id: {page.book_id}")

    if not ObjectId.is_valid(page.book_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid book_id format: {page.book_id}")

    try:
        book_doc = await db.get_book(page.book_id)
        if not book_doc:
            logger.warning(f"Book with id {page.book_id} not found. Cannot create page.")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Book with id {page.book_id} not found")

        page_data = copy.deepcopy(PAGE_FEATURE_DEFAULTS)
        page_data.update(page.model_dump())

        async with book_locks.lock_for(page.book_id):
            page_id = await db.save_page(page_data)

        saved_page = await db.get_page(page_id)
        if not saved_page:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve saved page.")
        resolved = await resolve_game_references([saved_page])
        return Page.model_validate(resolved[0])

    except DuplicateKeyError:
        logger.warning(f"Book {page.book_id} already has a page {page.page_number}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Book {page.book_id} already has a page with page_number {page.page_number}"
        )
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error saving page: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error saving page: {e}")


@router.post("/reorder", response_model=List[Page], response_model_by_alias=False)
async def reorder_book_pages(response: Response, reorder_request: PageReorderRequest = Body(...)):
    """
    Renumbers the pages of a book.
    Body: { book_id, page_order: [{ page_id, new_page_number }] }
    Returns every page of the book in its new order. The X-Pages-Requested,
    X-Pages-Applied and X-Pages-Skipped headers tell the caller how much of the
    request took effect.
    """
    logger.info(f"Reorder request received: book_id={reorder_request.book_id}, page_order count={len(reorder_request.page_order)}")

    try:
        result = await reorder_pages(reorder_request.book_id, reorder_request.page_order)
        pages = await resolve_game_references(result.pages)
    except InvalidPageOrder as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PageOrderConflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except DuplicateKeyError as e:
        # Only reachable if another process renumbered the book at the same time
        logger.error(f"Duplicate page number while reordering book {reorder_request.book_id}: {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Pages of this book were changed concurrently; retry the reorder.")
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error reordering pages: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error reordering pages: {e}")

    for header, value in result_headers(result).items():
        response.headers[header] = value
    logger.info(f"Pages reordered successfully, returning {len(pages)} pages")
    return [Page.model_validate(page) for page in pages]


@router.post("/book/{book_id}/repair")
async def repair_book_pages(book_id: str = Path(..., description="The ID of the book (string ObjectId)")):
    """
    Gives pages stuck on a negative placeholder page_number a real one.
    """
    logger.info(f"Received request to repair page numbers for book_id: {book_id}")
    try:
        repaired = await repair_placeholders(book_id)
    except InvalidPageOrder as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error repairing pages of book {book_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error repairing pages: {e}")
    return {"book_id": book_id, "repaired": repaired}


@router.get("/{page_id}", response_model=Page, response_model_by_alias=False)
async def get_page_by_id(page_id: str = Path(..., description="The ID of the page")):
    if not ObjectId.is_valid(page_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page ID format.")
    try:
        page_doc = await db.get_page(page_id)
        if not page_doc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")
        resolved = await resolve_game_references([page_doc])
        return Page.model_validate(resolved[0])
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error fetching page {page_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error fetching page: {e}")


@router.put("/{page_id}", response_model=Page, response_model_by_alias=False)
async def update_existing_page(page_id: str, page_update: PageUpdate):
    """
    Updates an existing page. Setting text_boxes also mirrors them into content.text_boxes
    so the two copies never disagree.
    """
    logger.info(f"Received request to update page ID: {page_id}")
    if not ObjectId.is_valid(page_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page ID format")

    update_data = page_update.model_dump(exclude_unset=True)
    for key in READ_ONLY_PAGE_FIELDS:
        if update_data.pop(key, None) is not None:
            logger.warning(f"Ignoring read-only field '{key}' in update of page {page_id}")
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No update data provided")

    try:
        existing = await db.get_page(page_id)
        if not existing:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")

        if "text_boxes" in update_data:
            content = dict(update_data.get("content") or existing.get("content") or {})
            content["text_boxes"] = update_data["text_boxes"]
            update_data["content"] = content

        async with book_locks.lock_for(existing["book_id"]):
            updated_page = await db.update_page(page_id, update_data)
        if not updated_page:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")

        resolved = await resolve_game_references([updated_page])
        return Page.model_validate(resolved[0])

    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Another page of this book already has page_number {update_data.get('page_number')}"
        )
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error updating page {page_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error updating page: {e}")


@router.delete("/{page_id}")
async def remove_page(page_id: str = Path(..., description="The ID of the page to delete")):
    """
    Deletes a specific page by its ID. Remaining pages keep their numbers.
    """
    logger.info(f"Received request to delete page with id: {page_id}")
    if not ObjectId.is_valid(page_id):
        logger.warning(f"Attempted to delete page with invalid ID format: {page_id}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page ID format.")

    try:
        deleted = await db.delete_page(page_id)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error deleting page {page_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Error deleting page: {e}")

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")
    return {"message": "Page deleted"}
