"""Process configuration.

Values are read once from the environment (and ``backend/.env``) and the
resulting ``Settings`` object is handed to every service at construction.
"""
from pydantic import BaseModel, Field
from dotenv import load_dotenv
from pathlib import Path
from typing import Optional, List
import os

ROOT_DIR = Path(__file__).parent


class Settings(BaseModel):
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "docquery"

    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    frontend_url: str = "http://localhost:5173"
    cors_origins: List[str] = Field(default_factory=list)
    environment: str = "development"

    model_config = {"extra": "ignore"}

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Build settings from the process environment."""
        load_dotenv(env_file or ROOT_DIR / ".env")

        frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
        cors = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

        return cls(
            mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
            db_name=os.getenv("DB_NAME", "docquery"),
            jwt_secret=os.getenv("JWT_SECRET", "change-me-in-production"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_expiration_hours=int(os.getenv("JWT_EXPIRATION_HOURS", "24")),
            gemini_api_key=(os.getenv("GEMINI_API_KEY") or "").strip() or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            # prefer STRIPE_SECRET_KEY; fallback STRIPE_API_KEY
            stripe_secret_key=(os.getenv("STRIPE_SECRET_KEY") or os.getenv("STRIPE_API_KEY") or "").strip() or None,
            stripe_webhook_secret=(os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip() or None,
            frontend_url=frontend_url,
            cors_origins=cors or [frontend_url],
            environment=os.getenv("ENVIRONMENT", "development"),
        )
