from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Backend root directory (where this config file's parent/parent/parent is)
BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent

class Settings(BaseSettings):
    # API Settings
    API_BASE_PATH: str = "/homeio/api"
    PROJECT_NAME: str = "HomeIO"
    PROJECT_VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = f"sqlite:///{BACKEND_ROOT / 'homeio.db'}"

    # Govee cloud API
    GOVEE_API_KEY: Optional[str] = None  # Set via environment variable
    GOVEE_API_BASE: str = "https://developer-api.govee.com/v1"
    GOVEE_254_BRIGHTNESS_MODELS: list[str] = ["H6110", "H6159", "H6163"]  # Report 0-254 instead of 0-100

    # Philips Hue bridge (local)
    HUE_BRIDGE_IP: Optional[str] = None
    HUE_API_KEY: Optional[str] = None

    # Reconciliation
    ADAPTER_TIMEOUT_SECONDS: float = 10.0
    RECONCILE_INTERVAL_SECONDS: int = 60  # 0 disables the periodic cycle
    RECONCILE_VENDORS_CONCURRENTLY: bool = True

    # Security - empty list disables the X-API-Key check
    API_KEYS: list[str] = []

    # CORS Configuration
    CORS_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = False

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
