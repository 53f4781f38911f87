import logging
from typing import Any, Dict, List

from bson import ObjectId

from storybook_backend.db import mongodb
from storybook_backend.models.common import coerce_id, is_valid_id
from storybook_backend.services.page_order import repair_placeholders

logger = logging.getLogger(__name__)


async def resolve_game_references(pages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Replaces each page's web_view.game_id with the game's display fields
    (url, name, cover_image, game_type). Unknown games keep the raw id.
    """
    game_ids = []
    for page in pages:
        game_id = (page.get("web_view") or {}).get("game_id")
        if isinstance(game_id, (str, ObjectId)):
            game_ids.append(str(game_id))
    if not game_ids:
        return pages

    games = {str(game["_id"]): game for game in await mongodb.get_games_by_ids(game_ids)}
    for page in pages:
        web_view = page.get("web_view") or {}
        game = games.get(str(web_view.get("game_id")))
        if game is not None:
            page["web_view"] = {**web_view, "game_id": game}
    return pages


async def list_pages_for_book(book_id: Any) -> List[Dict[str, Any]]:
    """
    All pages of a book, ascending by page_number, with game references resolved.
    A malformed book id gives an empty list so list screens keep rendering.
    """
    book_id = coerce_id(book_id)
    if not is_valid_id(book_id):
        logger.warning(f"Invalid bookId format: {book_id!r} (expected MongoDB ObjectId)")
        return []

    pages = await mongodb.get_pages_by_book_id(book_id)
    if any(page.get("page_number", 0) < 0 for page in pages):
        logger.warning(f"Book {book_id} has placeholder page numbers; repairing before listing")
        await repair_placeholders(book_id)
        pages = await mongodb.get_pages_by_book_id(book_id)
    return await resolve_game_references(pages)
