"""
Application settings

Values are read from the environment (and a local .env file, if present).
Handlers receive them through the `get_settings` dependency so tests can
swap in their own instance.
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    access_token_ttl_hours: int = 24
    reset_token_ttl_minutes: int = 60
    bcrypt_rounds: int = 12

    delivery_charge: float = 3.0
    delivery_days: int = 5

    frontend_url: str = "http://localhost:8000"
    email_api_key: str = ""
    email_sender: str = "Tailoring Shop <orders@tailoringshop.local>"
    shop_name: str = "Tailoring Shop"

    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]
    seed_products: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            jwt_secret=os.getenv("JWT_SECRET", "devsecret"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_ttl_hours=int(os.getenv("ACCESS_TOKEN_TTL_HOURS", 24)),
            reset_token_ttl_minutes=int(os.getenv("RESET_TOKEN_TTL_MINUTES", 60)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 12)),
            delivery_charge=float(os.getenv("DELIVERY_CHARGE", 3)),
            delivery_days=int(os.getenv("DELIVERY_DAYS", 5)),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:8000").rstrip("/"),
            email_api_key=(os.getenv("RESEND_API_KEY") or "").strip(),
            email_sender=os.getenv("EMAIL_SENDER", "Tailoring Shop <orders@tailoringshop.local>"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=origins or ["*"],
            seed_products=_env_bool("SEED_PRODUCTS", True),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
