"""Process configuration read from the environment.

A `.env` file at the repository root is loaded first (values already set in
the environment win). Settings are read once at startup and passed down;
nothing below the host re-reads the environment.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT = Path(__file__).parent.parent


class Settings(BaseModel):
    provider: str = "openai"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    provider_url: str = "https://api.openai.com"
    temperature: float = 0.3
    llm_timeout: float = 60.0
    max_sessions: int = 1000
    catalog_path: Path | None = None
    host: str = "0.0.0.0"
    port: int = 3000


def load_settings(env_file: Path | None = None) -> Settings:
    load_dotenv(env_file or ROOT / ".env")
    catalog = os.getenv("CATALOG_PATH", "")
    return Settings(
        provider=os.getenv("PROVIDER", "openai").strip().lower(),
        api_key=os.getenv("API_KEY", ""),
        model=os.getenv("MODEL", "gpt-4o-mini"),
        provider_url=os.getenv("PROVIDER_URL", "https://api.openai.com"),
        temperature=float(os.getenv("TEMPERATURE", "0.3")),
        llm_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "1000")),
        catalog_path=Path(catalog) if catalog else None,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
    )
