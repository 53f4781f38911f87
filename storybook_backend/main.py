import asyncio # Import asyncio for background tasks
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn # Import uvicorn

from storybook_backend.core.config import settings

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storybook Backend API")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000", "http://localhost:3100"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    # Let the client read how much of a reorder was applied
    expose_headers=["X-Pages-Requested", "X-Pages-Applied", "X-Pages-Skipped"],
)


@app.get("/")
async def read_root():
    return {"message": "Storybook Backend API is running"}

@app.get("/health")
async def health_check():
    """Health check endpoint, including MongoDB reachability."""
    database_ok = await ping_database()
    return {"status": "ok" if database_ok else "degraded", "database": "ok" if database_ok else "unavailable"}


# Include routers for books, pages, games, categories
from storybook_backend.api import books
from storybook_backend.api import pages
from storybook_backend.api import games
from storybook_backend.api import categories
from storybook_backend.services.repair_service import run_repair_task

app.include_router(books.router, prefix="/api/books", tags=["books"])
app.include_router(pages.router, prefix="/api/pages", tags=["pages"])
app.include_router(games.router, prefix="/api/games", tags=["games"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])

# Add database connection logic (connect on startup/shutdown)
from storybook_backend.db.mongodb import connect_to_mongo, close_mongo_connection, ping_database

repair_task = None

@app.on_event("startup")
async def startup_db_client():
    global repair_task
    await connect_to_mongo()
    if settings.REPAIR_INTERVAL_SECONDS > 0:
        repair_task = asyncio.create_task(run_repair_task())
        logger.info("Background page number repair task started.")
    else:
        logger.info("Background page number repair task disabled.")


@app.on_event("shutdown")
async def shutdown_db_client():
    if repair_task is not None:
        repair_task.cancel()
    await close_mongo_connection()
    logger.info("Database connection closed.")

def run():
    uvicorn.run(app, host="0.0.0.0", port=settings.BACKEND_PORT)

if __name__ == "__main__":
    run()
