import os
from typing import Optional
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    app_name: str = "Marketplace Chat"
    debug: bool = os.getenv("DEBUG", "False").lower() == "true"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "localhost")
    port: int = int(os.getenv("PORT", 8001))
    api_prefix: str = os.getenv("API_PREFIX", "/api")
    # "mongo" for the managed store, "memory" for local runs and tests
    store_backend: str = os.getenv("STORE_BACKEND", "mongo")
    mongo_url: str = os.getenv("MONGO_URL", "mongodb://localhost:27017/?replicaSet=rs0")
    mongo_db: str = os.getenv("MONGO_DB", "marketplace")
    store_timeout_seconds: Optional[float] = float(os.getenv("STORE_TIMEOUT_SECONDS", 30))
    transaction_max_attempts: int = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", 5))
    claim_batch_size: int = int(os.getenv("CLAIM_BATCH_SIZE", 20))
    max_offers_per_message: int = int(os.getenv("MAX_OFFERS_PER_MESSAGE", 3))
    row_slots: int = int(os.getenv("ROW_SLOTS", 3))

    class Config:
        env_file = ".env"
        extra = "allow"

settings = Settings()
