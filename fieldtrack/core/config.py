from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    APP_NAME: str = "FieldTrack"
    AUTH_MODE: Literal["firebase", "mock"] = "mock"
    STORE_BACKEND: Literal["supabase", "memory"] = "memory"
    LOG_LEVEL: str = "INFO"

    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    FIREBASE_CREDENTIALS_PATH: str = "./firebase-credentials.json"

    CORS_ORIGINS: str = "http://localhost:3000"
    APP_BASE_URL: str = "http://localhost:3000"

    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""
    EMAILJS_PRIVATE_KEY: str = ""
    EMAILJS_TEMPLATE_ID: str = ""

    # Workflow tunables
    LEARNING_CONTRACT_TTL_DAYS: int = 30
    SITE_AGREEMENT_YEARS: int = 3
    AGREEMENT_WARNING_DAYS: int = 30
    DAILY_TOTALS_MAX_DAYS: int = 366

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
