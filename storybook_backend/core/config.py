from dotenv import load_dotenv
from pydantic_settings import BaseSettings # Using pydantic-settings for cleaner env var loading

load_dotenv()

class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017/"
    DATABASE_NAME: str = "storybook"

    # Multi-document transactions need a replica set; leave off for a standalone mongod.
    MONGO_USE_TRANSACTIONS: bool = False

    # Upper bound for cursor.to_list() calls
    MAX_LIST_LENGTH: int = 1000

    # Background pass that normalizes leftover negative page numbers. 0 disables it.
    REPAIR_INTERVAL_SECONDS: int = 3600

    LOG_LEVEL: str = "INFO"
    BACKEND_PORT: int = 8000

    # Frontend URL allowed by CORS
    FRONTEND_URL: str = "http://localhost:3100"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore' # Ignore extra fields from .env if any

settings = Settings()
