import logging
from motor.motor_asyncio import AsyncIOMotorClient
from bson import ObjectId # Ensure ObjectId is imported
from bson.errors import InvalidId # Import InvalidId for specific error handling
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError
from typing import Optional, List, Dict, Any # Import types
from datetime import datetime # Import datetime

from storybook_backend.core.config import settings
from storybook_backend.models.game import GAME_SUMMARY_PROJECTION

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient = None
db = None

PAGE_NUMBER_INDEX = "book_id_page_number_unique"
CATEGORY_NAME_INDEX = "category_name_unique"

async def connect_to_mongo():
    global client, db
    if client is None:
        try:
            client = AsyncIOMotorClient(settings.MONGO_URI)
            db = client[settings.DATABASE_NAME]
            # The ping command is cheap and does not require auth.
            await client.admin.command('ping')
            logger.info("MongoDB connection successful")
        except Exception as e:
            logger.error(f"MongoDB connection failed: {e}")
            # Keep running; requests will get 503 until the database is reachable.
            client = None
            db = None
            return
        await ensure_indexes()


async def close_mongo_connection():
    global client, db
    if client:
        client.close()
        logger.info("MongoDB connection closed")
        client = None
        db = None

def get_database():
    if db is None:
        logger.error("Database not initialized. Call connect_to_mongo first.")
        raise ConnectionError("Database not initialized")
    return db

def get_client() -> Optional[AsyncIOMotorClient]:
    return client

async def ping_database() -> bool:
    """Returns True if the database answers a ping."""
    if client is None:
        return False
    try:
        await client.admin.command('ping')
        return True
    except Exception as e:
        logger.warning(f"MongoDB ping failed: {e}")
        return False

async def ensure_indexes():
    """
    Creates the indexes the application relies on.
    The (book_id, page_number) index is what makes two pages of one book unable to share a number.
    """
    database = get_database()
    await database.pages.create_index(
        [("book_id", ASCENDING), ("page_number", ASCENDING)],
        unique=True,
        name=PAGE_NUMBER_INDEX,
    )
    await database.categories.create_index(
        [("name", ASCENDING)],
        unique=True,
        name=CATEGORY_NAME_INDEX,
    )
    logger.info("MongoDB indexes ensured")

# --- Page Database Operations ---
# These let PyMongoError propagate: a reorder has to tell "no such page" apart from "storage failed".

async def get_pages_by_book_id(book_id: str, session=None) -> List[Dict[str, Any]]:
    """Fetches all pages of a book sorted by page_number."""
    database = get_database()
    cursor = database.pages.find({"book_id": book_id}, session=session).sort("page_number", ASCENDING)
    return await cursor.to_list(length=None)

async def get_page(page_id: str) -> Optional[Dict[str, Any]]:
    """Fetches a single page by its ID."""
    database = get_database()
    if not ObjectId.is_valid(page_id):
        logger.warning(f"Invalid page ID format: {page_id}")
        return None
    return await database.pages.find_one({"_id": ObjectId(page_id)})

async def save_page(page_data: dict) -> str:
    """Inserts a page. Raises DuplicateKeyError if the book already has that page_number."""
    database = get_database()
    now = datetime.utcnow()
    page_data.setdefault('created_at', now)
    page_data.setdefault('updated_at', now)
    result = await database.pages.insert_one(page_data)
    logger.info(f"Saved page {result.inserted_id} (book {page_data.get('book_id')}, page_number {page_data.get('page_number')})")
    return str(result.inserted_id)

async def update_page(page_id: str, update_data: dict) -> Optional[Dict[str, Any]]:
    """Updates a page and returns the updated document, or None if it doesn't exist."""
    database = get_database()
    try:
        obj_id = ObjectId(page_id)
    except (InvalidId, TypeError):
        logger.error(f"Invalid page ID format for update: {page_id}")
        return None

    update_data["updated_at"] = datetime.utcnow()
    result = await database.pages.update_one({"_id": obj_id}, {"$set": update_data})
    if result.matched_count == 0:
        logger.warning(f"No page found with ID {page_id} to update.")
        return None
    return await database.pages.find_one({"_id": obj_id})

async def delete_page(page_id: str) -> bool:
    """Deletes a page by its ID."""
    database = get_database()
    if not ObjectId.is_valid(page_id):
        logger.warning(f"Invalid page_id format for deletion: {page_id}")
        return False
    result = await database.pages.delete_one({"_id": ObjectId(page_id)})
    if result.deleted_count > 0:
        logger.info(f"Page with id {page_id} deleted successfully.")
        return True
    logger.warning(f"Page with id {page_id} not found for deletion.")
    return False

async def delete_pages_by_book_id(book_id: str) -> int:
    database = get_database()
    result = await database.pages.delete_many({"book_id": book_id})
    logger.info(f"Deleted {result.deleted_count} pages of book {book_id}")
    return result.deleted_count

async def set_page_number(book_id: str, page_id: str, page_number: int, session=None) -> bool:
    """
    Sets the page_number of one page, only if it belongs to book_id.
    Returns True if a page matched.
    """
    database = get_database()
    result = await database.pages.update_one(
        {"_id": ObjectId(page_id), "book_id": book_id},
        {"$set": {"page_number": page_number, "updated_at": datetime.utcnow()}},
        session=session,
    )
    return result.matched_count > 0

async def get_placeholder_pages(book_id: str, session=None) -> List[Dict[str, Any]]:
    """Pages of a book left with a negative page_number, -1 first."""
    database = get_database()
    cursor = database.pages.find(
        {"book_id": book_id, "page_number": {"$lt": 0}}, session=session
    ).sort("page_number", DESCENDING)
    return await cursor.to_list(length=None)

async def get_books_with_placeholders() -> List[str]:
    """IDs of books that have at least one page with a negative page_number."""
    database = get_database()
    return await database.pages.distinct("book_id", {"page_number": {"$lt": 0}})

async def get_max_page_number(book_id: str, session=None) -> int:
    """Highest non-negative page_number in a book, 0 if it has none."""
    database = get_database()
    cursor = database.pages.find(
        {"book_id": book_id, "page_number": {"$gte": 0}}, session=session
    ).sort("page_number", DESCENDING)
    top = await cursor.to_list(length=1)
    return top[0]["page_number"] if top else 0

# --- Game Database Operations ---

async def get_games_by_ids(game_ids: List[str]) -> List[Dict[str, Any]]:
    """Fetches the display fields of the given games. Malformed IDs are ignored."""
    database = get_database()
    obj_ids = [ObjectId(game_id) for game_id in set(game_ids) if ObjectId.is_valid(game_id)]
    if not obj_ids:
        return []
    cursor = database.games.find({"_id": {"$in": obj_ids}}, GAME_SUMMARY_PROJECTION)
    return await cursor.to_list(length=len(obj_ids))

async def save_game(game_data: dict) -> Optional[str]:
    """Saves a game record to the database."""
    database = get_database()
    now = datetime.utcnow()
    game_data.setdefault('created_at', now)
    game_data.setdefault('updated_at', now)
    try:
        result = await database.games.insert_one(game_data)
        logger.info(f"Saved game with ID: {result.inserted_id}")
        return str(result.inserted_id)
    except Exception as e:
        logger.error(f"Error saving game: {e}", exc_info=True)
        return None

async def get_game(game_id: str) -> Optional[Dict[str, Any]]:
    database = get_database()
    if not ObjectId.is_valid(game_id):
        logger.warning(f"Invalid game ID format: {game_id}")
        return None
    try:
        return await database.games.find_one({"_id": ObjectId(game_id)})
    except Exception as e:
        logger.error(f"Error fetching game {game_id}: {e}", exc_info=True)
        return None

async def get_games() -> List[Dict[str, Any]]:
    database = get_database()
    try:
        cursor = database.games.find({}).sort("name", ASCENDING)
        return await cursor.to_list(length=settings.MAX_LIST_LENGTH)
    except Exception as e:
        logger.error(f"Error fetching games: {e}", exc_info=True)
        return []

# --- Book Database Operations ---

async def save_book(book_data: dict) -> Optional[str]:
    """Saves book data to the database."""
    database = get_database()
    # Ensure timestamps are set if not provided
    now = datetime.utcnow()
    book_data.setdefault('created_at', now)
    book_data.setdefault('updated_at', now)
    try:
        result = await database.books.insert_one(book_data)
        logger.info(f"Saved book with ID: {result.inserted_id}")
        return str(result.inserted_id) # Return string representation of ObjectId
    except Exception as e:
        logger.error(f"Error saving book: {e}", exc_info=True)
        return None

async def get_book(book_id: str) -> Optional[Dict[str, Any]]:
    """Retrieves book data by ID."""
    database = get_database()
    if not ObjectId.is_valid(book_id):
        logger.error(f"Invalid book ID format: {book_id}")
        return None

    try:
        return await database.books.find_one({"_id": ObjectId(book_id)})
    except Exception as e:
        logger.error(f"Error fetching book {book_id}: {e}", exc_info=True)
        return None

async def get_books(filter: Optional[dict] = None) -> List[Dict[str, Any]]:
    """Retrieves all books with an optional filter, newest first."""
    database = get_database()
    try:
        books_cursor = database.books.find(filter or {}).sort("created_at", DESCENDING)
        return await books_cursor.to_list(length=settings.MAX_LIST_LENGTH)
    except Exception as e:
        logger.error(f"Error fetching all books: {e}", exc_info=True)
        return []

async def update_book(book_id: str, update_data: dict) -> Optional[Dict[str, Any]]:
    """Updates a book document by its _id string and returns the updated document."""
    database = get_database()
    if not ObjectId.is_valid(book_id):
        logger.error(f"Invalid book ID format for update: {book_id}")
        return None

    obj_id = ObjectId(book_id)
    try:
        update_data["updated_at"] = datetime.utcnow()
        result = await database.books.update_one({"_id": obj_id}, {"$set": update_data})
        if result.matched_count == 0:
            logger.warning(f"No book found with ID {book_id} to update.")
            return None
        logger.info(f"Updated book {book_id}. Matched count: {result.matched_count}, Modified count: {result.modified_count}")
        return await database.books.find_one({"_id": obj_id})
    except Exception as e:
        logger.error(f"Error updating book {book_id}: {e}", exc_info=True)
        return None

async def delete_book_record(book_id: str) -> bool:
    """
    Deletes a book record from the database by its ID.
    Returns True if deletion was successful, False otherwise.
    """
    database = get_database()
    if not ObjectId.is_valid(book_id):
        logger.warning(f"Invalid Book ID format for deletion: {book_id}")
        return False
    try:
        delete_result = await database.books.delete_one({"_id": ObjectId(book_id)})
        if delete_result.deleted_count == 0:
            logger.warning(f"No book record found with ID {book_id} to delete.")
            return False
        logger.info(f"Book record with ID {book_id} deleted successfully from MongoDB.")
        return True
    except Exception as e:
        logger.error(f"Error deleting book record {book_id} from MongoDB: {e}", exc_info=True)
        return False

# --- Category Database Operations ---

async def save_category(category_data: dict) -> Optional[str]:
    """Saves a category. Raises DuplicateKeyError if the name is taken."""
    database = get_database()
    now = datetime.utcnow()
    category_data.setdefault('created_at', now)
    category_data.setdefault('updated_at', now)
    try:
        result = await database.categories.insert_one(category_data)
        logger.info(f"Saved category '{category_data.get('name')}' with ID: {result.inserted_id}")
        return str(result.inserted_id)
    except DuplicateKeyError:
        raise
    except Exception as e:
        logger.error(f"Error saving category: {e}", exc_info=True)
        return None

async def get_categories(filter: Optional[dict] = None) -> List[Dict[str, Any]]:
    database = get_database()
    try:
        cursor = database.categories.find(filter or {}).sort("name", ASCENDING)
        return await cursor.to_list(length=settings.MAX_LIST_LENGTH)
    except Exception as e:
        logger.error(f"Error fetching categories: {e}", exc_info=True)
        return []

async def get_category(category_id: str) -> Optional[Dict[str, Any]]:
    database = get_database()
    if not ObjectId.is_valid(category_id):
        logger.warning(f"Invalid category_id format: {category_id}")
        return None
    try:
        return await database.categories.find_one({"_id": ObjectId(category_id)})
    except Exception as e:
        logger.error(f"Error fetching category {category_id}: {e}", exc_info=True)
        return None

async def update_category(category_id: str, update_data: dict) -> Optional[Dict[str, Any]]:
    """Updates a category. Raises DuplicateKeyError if renamed onto an existing name."""
    database = get_database()
    if not ObjectId.is_valid(category_id):
        logger.warning(f"Invalid category_id format for update: {category_id}")
        return None
    obj_id = ObjectId(category_id)
    try:
        update_data["updated_at"] = datetime.utcnow()
        result = await database.categories.update_one({"_id": obj_id}, {"$set": update_data})
        if result.matched_count == 0:
            logger.warning(f"No category found with ID {category_id} to update.")
            return None
        return await database.categories.find_one({"_id": obj_id})
    except DuplicateKeyError:
        raise
    except Exception as e:
        logger.error(f"Error updating category {category_id}: {e}", exc_info=True)
        return None

async def delete_category(category_id: str) -> bool:
    database = get_database()
    if not ObjectId.is_valid(category_id):
        logger.warning(f"Invalid category_id format for deletion: {category_id}")
        return False
    try:
        result = await database.categories.delete_one({"_id": ObjectId(category_id)})
        return result.deleted_count > 0
    except Exception as e:
        logger.error(f"Error deleting category {category_id}: {e}", exc_info=True)
        return False
