from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "POS Inventory"
    DATABASE_URL: str = "sqlite:///./pos_inventory.db"

    # Rows per page for every cursor-paginated collection
    PAGE_SIZE: int = 12

    # Freshness window for cached list pages. Writes do not evict entries,
    # so readers may see data up to this many seconds old.
    CACHE_TTL_SECONDS: float = 30.0
    # Upper bound on cached pages; least recently used pages go first
    CACHE_MAX_ENTRIES: int = 1000

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env"}


settings = Settings()
