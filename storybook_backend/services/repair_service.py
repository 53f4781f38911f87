import asyncio
import logging

from pymongo.errors import PyMongoError

from storybook_backend.core.config import settings
from storybook_backend.services.page_order import find_books_needing_repair, repair_placeholders

logger = logging.getLogger(__name__)

async def run_repair_cycle() -> int:
    """
    Finds books left with negative placeholder page numbers (a reorder that died
    between its two phases) and gives those pages real numbers again.
    Returns the total number of pages repaired.
    """
    book_ids = await find_books_needing_repair()
    if not book_ids:
        logger.info("No placeholder page numbers found.")
        return 0

    logger.warning(f"Found {len(book_ids)} books with placeholder page numbers. Repairing...")
    total = 0
    for book_id in book_ids:
        try:
            repaired = await repair_placeholders(book_id)
            total += repaired
            logger.info(f"Repaired {repaired} pages in book {book_id}.")
        except PyMongoError as e:
            logger.error(f"Failed to repair pages of book {book_id}: {e}", exc_info=True)
    return total

async def run_repair_task():
    """Runs run_repair_cycle every REPAIR_INTERVAL_SECONDS until cancelled."""
    interval = settings.REPAIR_INTERVAL_SECONDS
    logger.info(f"Page number repair task started. Checking every {interval} seconds.")

    while True:
        await asyncio.sleep(interval)
        logger.info("Running page number repair cycle...")
        try:
            await run_repair_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"An error occurred during page number repair: {e}", exc_info=True)
