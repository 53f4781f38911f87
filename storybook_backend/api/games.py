import logging
from typing import List

from fastapi import APIRouter, HTTPException, status, Body, Path
from bson import ObjectId

from storybook_backend.db import mongodb as db
from storybook_backend.models.game import Game, GameCreate

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=Game, status_code=status.HTTP_201_CREATED, response_model_by_alias=False)
async def create_game(game: GameCreate = Body(...)):
    """
    Registers a game that web view pages can embed.
    """
    logger.info(f"Received request to create game: '{game.name}'")
    try:
        game_id = await db.save_game(game.model_dump())
        game_doc = await db.get_game(game_id) if game_id else None
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not game_doc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create game")
    return Game.model_validate(game_doc)


@router.get("/", response_model=List[Game], response_model_by_alias=False)
async def list_games():
    try:
        games = await db.get_games()
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    return [Game.model_validate(doc) for doc in games]


@router.get("/{game_id}", response_model=Game, response_model_by_alias=False)
async def get_game_by_id(game_id: str = Path(..., description="The ID of the game")):
    if not ObjectId.is_valid(game_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid game ID format.")
    try:
        game_doc = await db.get_game(game_id)
    except ConnectionError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database connection not available.")
    if not game_doc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Game with id {game_id} not found")
    return Game.model_validate(game_doc)
