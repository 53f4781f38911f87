# storybook_backend/api/books.py

import logging
from fastapi import APIRouter, HTTPException, status, Body, Path, Query
from typing import List, Optional
from bson import ObjectId
from pymongo.errors import PyMongoError

from storybook_backend.models.book import Book, BookCreate, BookUpdate
from storybook_backend.db.mongodb import (
    save_book,
    get_book,
    get_books,
    update_book,
    delete_book_record,
    delete_pages_by_book_id,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=List[Book], response_model_by_alias=False)
async def list_books(
    status_filter: Optional[str] = Query(None, alias="status", description="Only books with this status (draft or published)"),
    category_id: Optional[str] = Query(None, description="Only books in this category"),
):
    """
    Retrieves a list of books, newest first.
    """
    logger.info(f"Fetching list of books (status={status_filter}, category_id={category_id})...")
    book_filter = {}
    if status_filter:
        book_filter["status"] = status_filter
    if category_id:
        book_filter["category_id"] = category_id

    try:
        books_docs = await get_books(filter=book_filter)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    logger.info(f"Fetched {len(books_docs)} book documents from DB.")
    return [Book.model_validate(doc) for doc in books_docs]


@router.post("/", response_model=Book, status_code=status.HTTP_201_CREATED, response_model_by_alias=False)
async def create_book(book: BookCreate = Body(...)):
    logger.info(f"Received request to create book: '{book.title}'")
    if book.category_id and not ObjectId.is_valid(book.category_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid category_id format: {book.category_id}")

    try:
        inserted_id_str = await save_book(book.model_dump())
        if not inserted_id_str:
            logger.error("Failed to save book record to database.")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save book record.")

        created_book_doc = await get_book(inserted_id_str)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")

    if not created_book_doc:
        logger.error(f"Failed to retrieve created book record with ID: {inserted_id_str}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve created book record.")
    return Book.model_validate(created_book_doc)


@router.get("/{book_id}", response_model=Book, response_model_by_alias=False)
async def get_book_by_id(book_id: str = Path(..., description="The ID of the book (string ObjectId)")):
    logger.info(f"Received request for book ID: {book_id}")
    if not ObjectId.is_valid(book_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid book ID format.")

    try:
        book_doc = await get_book(book_id)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not book_doc:
        logger.warning(f"Get endpoint: Book not found in DB for ID: {book_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return Book.model_validate(book_doc)


@router.put("/{book_id}", response_model=Book, response_model_by_alias=False)
async def update_existing_book(book_id: str, book_update: BookUpdate):
    logger.info(f"Received request to update book ID: {book_id}")
    if not ObjectId.is_valid(book_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid book ID format")

    update_data = book_update.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No update data provided")

    try:
        updated_book_doc = await update_book(book_id, update_data)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not updated_book_doc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Book not found")
    return Book.model_validate(updated_book_doc)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(book_id: str = Path(..., description="The ID of the book to delete")):
    """
    Deletes a book and every page it owns.
    """
    logger.info(f"Received request to delete book with ID: {book_id}")
    if not ObjectId.is_valid(book_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid book ID format.")

    try:
        deleted = await delete_book_record(book_id)
        if not deleted:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Book with id {book_id} not found")
        # A failure past this point can only leave orphaned pages, never a half-empty book
        await delete_pages_by_book_id(book_id)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    except PyMongoError as e:
        logger.error(f"Error deleting pages of book {book_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Book deleted but its pages could not be removed: {e}")

    logger.info(f"Book {book_id} and its pages deleted successfully.")
    return None
