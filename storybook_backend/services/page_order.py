"""
Page reordering for a book.

Pages carry a page_number that MongoDB keeps unique per book through the
(book_id, page_number) index, so numbers can't simply be swapped one write at a time.
A reorder first parks every page it moves on a negative placeholder (-1, -2, ...),
then writes the final numbers. Negative numbers are never used at rest, so neither
phase can collide with itself or with pages that aren't moving.
"""
import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from pymongo.errors import PyMongoError

from storybook_backend.core.config import settings
from storybook_backend.db import mongodb
from storybook_backend.models.common import coerce_id, is_valid_id
from storybook_backend.models.page import PageOrderItem

logger = logging.getLogger(__name__)


class PageOrderError(Exception):
    """Base class for reorder requests that are rejected before anything is written."""


class InvalidPageOrder(PageOrderError):
    pass


class PageOrderConflict(PageOrderError):
    pass


class BookLockRegistry:
    """
    One asyncio.Lock per book id. A lock is only kept alive while a coroutine holds
    or waits on it, so the registry doesn't grow with the number of books ever touched.
    Only serializes writers inside this process.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, book_id: str) -> asyncio.Lock:
        lock = self._locks.get(book_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[book_id] = lock
        return lock

    def __len__(self):
        return len(self._locks)


book_locks = BookLockRegistry()


@dataclass
class ReorderEntry:
    page_id: str
    new_page_number: int


@dataclass
class ReorderResult:
    requested: int
    applied: int
    skipped: int
    pages: List[Dict[str, Any]] = field(default_factory=list)


def validate_page_order(page_order: Sequence[PageOrderItem]) -> Tuple[List[ReorderEntry], int]:
    """
    Returns the usable entries and how many were skipped for a malformed page_id.
    Raises InvalidPageOrder if two entries name the same page.
    """
    entries: List[ReorderEntry] = []
    skipped = 0
    for item in page_order:
        page_id = coerce_id(item.page_id)
        if not is_valid_id(page_id):
            logger.warning(f"Invalid pageId skipped: {page_id!r}")
            skipped += 1
            continue
        entries.append(ReorderEntry(page_id=page_id, new_page_number=item.new_page_number))

    seen_ids = set()
    for entry in entries:
        if entry.page_id in seen_ids:
            raise InvalidPageOrder(f"Page {entry.page_id} appears more than once in pageOrder")
        seen_ids.add(entry.page_id)
    return entries, skipped


def check_targets(entries: Sequence[ReorderEntry], current_pages: Sequence[Dict[str, Any]]):
    """
    Checks the target numbers of the entries that name one of the book's pages.
    Entries for pages outside the book write nothing, so their targets are ignored.
    Raises InvalidPageOrder if two of the book's pages get the same number, and
    PageOrderConflict if a target is held by a page the request doesn't move.
    """
    book_page_ids = {str(page["_id"]) for page in current_pages}
    owned = [entry for entry in entries if entry.page_id in book_page_ids]

    seen_numbers = set()
    for entry in owned:
        if entry.new_page_number in seen_numbers:
            raise InvalidPageOrder(f"Page number {entry.new_page_number} is assigned more than once")
        seen_numbers.add(entry.new_page_number)

    moving = {entry.page_id for entry in owned}
    fixed_numbers = {
        page.get("page_number")
        for page in current_pages
        if str(page["_id"]) not in moving
    }
    clashes = [entry.new_page_number for entry in owned if entry.new_page_number in fixed_numbers]
    if clashes:
        raise PageOrderConflict(
            f"Page numbers {sorted(clashes)} are held by pages not included in pageOrder"
        )


async def reorder_pages(book_id: Any, page_order: Sequence[PageOrderItem]) -> ReorderResult:
    """
    Moves each listed page of a book to its requested page_number.

    Entries whose page_id is malformed are skipped; entries whose page doesn't belong
    to the book are no-ops. The result says how many entries were requested, applied
    and skipped, and holds the book's pages re-read in their new order.
    """
    book_id = coerce_id(book_id)
    if not is_valid_id(book_id):
        logger.error(f"Invalid bookId format: {book_id!r}")
        raise InvalidPageOrder("Invalid bookId format")

    entries, skipped = validate_page_order(page_order)
    logger.info(f"Reordering {len(entries)} pages for book {book_id} ({skipped} skipped)")

    async with book_locks.lock_for(book_id):
        # Leftovers from an interrupted reorder would collide with this run's placeholders
        await _repair_locked(book_id)

        current_pages = await mongodb.get_pages_by_book_id(book_id)
        check_targets(entries, current_pages)

        try:
            applied = await _apply_two_phase(book_id, entries)
        except PyMongoError as e:
            logger.error(f"Reorder of book {book_id} failed part way: {e}", exc_info=True)
            await _try_repair_after_failure(book_id)
            raise

        pages = await mongodb.get_pages_by_book_id(book_id)

    logger.info(f"Updated {applied} of {len(entries)} pages for book {book_id}")
    return ReorderResult(
        requested=len(page_order),
        applied=applied,
        skipped=skipped,
        pages=pages,
    )


async def _apply_two_phase(book_id: str, entries: List[ReorderEntry]) -> int:
    mongo_client = mongodb.get_client()
    if settings.MONGO_USE_TRANSACTIONS and mongo_client is not None:
        async with await mongo_client.start_session() as session:
            async with session.start_transaction():
                return await _write_phases(book_id, entries, session=session)
    return await _write_phases(book_id, entries)


async def _write_phases(book_id: str, entries: List[ReorderEntry], session=None) -> int:
    # Phase 1 must be fully written before phase 2 starts
    logger.info(f"Phase 1: setting {len(entries)} pages of book {book_id} to placeholder numbers")
    for index, entry in enumerate(entries):
        await mongodb.set_page_number(book_id, entry.page_id, -(index + 1), session=session)

    logger.info(f"Phase 2: setting pages of book {book_id} to final page numbers")
    applied = 0
    for entry in entries:
        if await mongodb.set_page_number(book_id, entry.page_id, entry.new_page_number, session=session):
            applied += 1
        else:
            logger.warning(f"Page {entry.page_id} not found in book {book_id}; entry had no effect")
    return applied


async def _try_repair_after_failure(book_id: str):
    try:
        await _repair_locked(book_id)
    except PyMongoError as e:
        logger.error(f"Could not repair placeholders of book {book_id} after failed reorder: {e}")


async def _repair_locked(book_id: str) -> int:
    placeholders = await mongodb.get_placeholder_pages(book_id)
    if not placeholders:
        return 0

    next_number = await mongodb.get_max_page_number(book_id)
    for page in placeholders:
        next_number += 1
        await mongodb.set_page_number(book_id, str(page["_id"]), next_number)
    logger.warning(
        f"Repaired {len(placeholders)} placeholder page numbers in book {book_id}; "
        f"moved to {next_number - len(placeholders) + 1}..{next_number}"
    )
    return len(placeholders)


async def repair_placeholders(book_id: str) -> int:
    """
    Gives every page of the book that still has a negative page_number a real one,
    appended after the highest existing number in placeholder order (-1 first).
    Idempotent. Returns the number of pages fixed.
    """
    book_id = coerce_id(book_id)
    if not is_valid_id(book_id):
        raise InvalidPageOrder("Invalid bookId format")
    async with book_locks.lock_for(book_id):
        return await _repair_locked(book_id)


async def find_books_needing_repair() -> List[str]:
    return await mongodb.get_books_with_placeholders()


def result_headers(result: ReorderResult) -> Dict[str, str]:
    """Response headers reporting how much of a reorder request was applied."""
    return {
        "X-Pages-Requested": str(result.requested),
        "X-Pages-Applied": str(result.applied),
        "X-Pages-Skipped": str(result.skipped),
    }
