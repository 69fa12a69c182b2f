import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_hours: int,
        income_keywords: Optional[tuple[str, ...]],
        anomaly_sweep_hour: int,
        groq_api_key: Optional[str],
        groq_model: str,
        groq_temperature: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_hours = token_max_age_hours
        self.income_keywords = income_keywords
        self.anomaly_sweep_hour = anomaly_sweep_hour
        self.groq_api_key = groq_api_key
        self.groq_model = groq_model
        self.groq_temperature = groq_temperature


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _keyword_list(raw: Optional[str]) -> Optional[tuple[str, ...]]:
    if not raw:
        return None
    words = tuple(w.strip().lower() for w in raw.split(",") if w.strip())
    return words or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "UTC")
    token_secret = os.getenv(
        "FINANCE_TOKEN_SECRET",
        "5c0f3d2b8e1a47c69f0b7d6e2a9c41f8b3e5d7a1c9f2e4b6d8a0c3e5f7b9d1a2",
    )
    token_max_age_hours = int(os.getenv("FINANCE_TOKEN_MAX_AGE_HOURS", "168"))
    income_keywords = _keyword_list(os.getenv("FINANCE_INCOME_KEYWORDS"))
    anomaly_sweep_hour = int(os.getenv("FINANCE_ANOMALY_SWEEP_HOUR", "3"))
    groq_api_key = os.getenv("FINANCE_GROQ_API_KEY") or None
    groq_model = os.getenv("FINANCE_GROQ_MODEL", "llama-3.3-70b-versatile")
    groq_temperature = float(os.getenv("FINANCE_GROQ_TEMPERATURE", "0.6"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_hours=token_max_age_hours,
        income_keywords=income_keywords,
        anomaly_sweep_hour=anomaly_sweep_hour,
        groq_api_key=groq_api_key,
        groq_model=groq_model,
        groq_temperature=groq_temperature,
    )
