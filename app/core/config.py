from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    APP_NAME: str = "CampusCore"
    AUTH_MODE: Literal["firebase", "mock"] = "mock"
    LOG_LEVEL: str = "INFO"

    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    FIREBASE_CREDENTIALS_PATH: str = "./firebase-credentials.json"

    CORS_ORIGINS: str = "http://localhost:3000"
    APP_URL: str = "http://localhost:3000"

    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    ATTENDANCE_THRESHOLD: float = 75.0

    PAYMENT_HTTP_TIMEOUT: float = 20.0
    STRIPE_WEBHOOK_TOLERANCE: int = 300

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
