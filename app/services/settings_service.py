"""Settings service layer - stores shop credentials and runtime settings."""
from typing import Optional, Dict, List
from sqlalchemy.orm import Session

from app.models import Setting

# key -> (description, sensitive)
CREDENTIAL_SETTINGS = {
    "shopify_shop": ("Shopify shop domain (e.g., myshop.myshopify.com)", False),
    "shopify_token": ("Shopify Admin API access token", True),
}


def mask_value(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return "***" + value[-4:] if len(value) > 4 else "****"


class SettingsService:
    """Service for managing application settings."""

    def get_setting(self, db: Session, key: str) -> Optional[Setting]:
        """Get a setting by key."""
        return db.query(Setting).filter(Setting.key == key).first()

    def get_all_settings(self, db: Session, include_sensitive: bool = True) -> List[Setting]:
        query = db.query(Setting)
        if not include_sensitive:
            query = query.filter(Setting.is_sensitive == False)  # noqa: E712
        return query.order_by(Setting.key).all()

    def set_setting(
        self,
        db: Session,
        key: str,
        value: Optional[str],
        description: Optional[str] = None,
        is_sensitive: bool = False
    ) -> Setting:
        """Create or update a setting."""
        setting = self.get_setting(db, key)

        if setting:
            if value is not None:
                setting.value = value
            if description is not None:
                setting.description = description
            setting.is_sensitive = is_sensitive
        else:
            setting = Setting(
                key=key,
                value=value,
                description=description,
                is_sensitive=is_sensitive
            )
            db.add(setting)

        db.commit()
        db.refresh(setting)
        return setting

    def update_api_keys(
        self,
        db: Session,
        shopify_shop: Optional[str] = None,
        shopify_token: Optional[str] = None
    ) -> Dict[str, bool]:
        """Update shop credentials. Returns which keys were updated."""
        updated = {}

        for key, value in (("shopify_shop", shopify_shop), ("shopify_token", shopify_token)):
            if value is None:
                continue
            description, sensitive = CREDENTIAL_SETTINGS[key]
            self.set_setting(db, key, value.strip(), description, is_sensitive=sensitive)
            updated[key] = True

        return updated


# Singleton instance
settings_service = SettingsService()
