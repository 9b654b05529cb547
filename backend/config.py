import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Value shipped in .env.example; treated the same as a missing key
PLACEHOLDER_API_KEY = "your-api-key-here"


class Settings(BaseModel):
    anthropic_api_key: Optional[str] = None
    model: str = "claude-sonnet-4-5"
    db_path: str = "flowmind.db"
    cache_ttl_seconds: int = 3600
    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    @property
    def has_api_key(self) -> bool:
        return bool(self.anthropic_api_key) and self.anthropic_api_key != PLACEHOLDER_API_KEY

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment, after loading .env."""
        load_dotenv()
        origins = os.getenv("FLOWMIND_CORS_ORIGINS", "http://localhost:5173")
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            model=os.getenv("FLOWMIND_MODEL", "claude-sonnet-4-5"),
            db_path=os.getenv("FLOWMIND_DB_PATH", "flowmind.db"),
            cache_ttl_seconds=int(os.getenv("FLOWMIND_CACHE_TTL_SECONDS", "3600")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("FLOWMIND_LOG_LEVEL", "INFO").upper(),
        )
