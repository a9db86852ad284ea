"""
Configuration settings for the CRM reporting backend
"""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables"""

    def __init__(self):
        # Firestore
        self.FIRESTORE_PROJECT_ID = os.getenv("FIRESTORE_PROJECT_ID", "")
        self.GOOGLE_APPLICATION_CREDENTIALS = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
        # Query the company_id index first; disable to always scan and filter in memory
        self.FIRESTORE_SERVER_SIDE_FILTERS = _env_bool("FIRESTORE_SERVER_SIDE_FILTERS", True)
        self.VERIFY_COMPANY_EXISTS = _env_bool("VERIFY_COMPANY_EXISTS", True)

        # Collections
        self.FIRESTORE_COLLECTION_COMPANIES = os.getenv("FIRESTORE_COLLECTION_COMPANIES", "companies")
        self.FIRESTORE_COLLECTION_USERS = os.getenv("FIRESTORE_COLLECTION_USERS", "users")

        # Reports
        self.DEFAULT_REPORT_DAYS = int(os.getenv("DEFAULT_REPORT_DAYS", "30"))
        self.ANALYTICS_CACHE_TTL = int(os.getenv("ANALYTICS_CACHE_TTL", "60"))

        # API
        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]
        self.USE_MOCK_SERVICES = _env_bool("USE_MOCK_SERVICES", False)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @property
    def firestore_configured(self) -> bool:
        return bool(self.FIRESTORE_PROJECT_ID)


settings = Settings()
