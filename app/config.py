"""Application configuration."""
import os
import logging
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def get_db_setting(key: str, default: str = "") -> str:
    """Get setting from database with fallback to environment variable."""
    try:
        from app.database import SessionLocal
        from app.models import Setting

        db = SessionLocal()
        try:
            setting = db.query(Setting).filter(Setting.key == key).first()
            if setting and setting.value:
                return setting.value
        finally:
            db.close()
    except Exception as e:
        # Database might not be initialized yet
        logger.debug("Settings table unavailable for %s: %s", key, e)

    # Fallback to environment variable
    return os.getenv(key.upper(), default)


class Settings(BaseSettings):
    # App settings
    app_name: str = "Shopify Bulk Editor API"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./bulk_editor.db"

    # Shopify - will be overridden by get_shopify_* methods
    shopify_shop: str = ""
    shopify_token: str = ""
    shopify_api_version: str = "2026-01"
    request_timeout_seconds: int = 60

    def get_shopify_shop(self) -> str:
        """Get Shopify shop from DB or env."""
        return get_db_setting("shopify_shop", self.shopify_shop)

    def get_shopify_token(self) -> str:
        """Get Shopify token from DB or env."""
        return get_db_setting("shopify_token", self.shopify_token)

    # CSV import
    csv_max_rows: int = 5000

    # Audit log
    audit_retention_hours: int = 24

    # Paging
    owner_page_size: int = 200
    global_tag_page_size: int = 20

    # Jobs run in a background thread unless this is set (tests)
    run_jobs_inline: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
