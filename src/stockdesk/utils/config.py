from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_DATA_DIR = "STOCKDESK_DATA_DIR"
ENV_DB_PATH = "STOCKDESK_DB_PATH"
ENV_ADMIN_EMAIL = "STOCKDESK_ADMIN_EMAIL"
ENV_ADMIN_PASSWORD = "STOCKDESK_ADMIN_PASSWORD"
ENV_SEED_DEMO = "STOCKDESK_SEED_DEMO"

LOW_STOCK_THRESHOLD = 2
LOW_STOCK_REFRESH_SECONDS = 10.0

PAYMENT_METHODS = ("Cash", "Credit Card", "Mobile Pay")


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    admin_email: str = "admin@stockdesk.local"
    admin_password: str = "admin123"
    seed_demo: bool = True
    currency: str = "Rs."


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Priority order:
    # 1) STOCKDESK_DB_PATH for the database file itself
    # 2) STOCKDESK_DATA_DIR for the folder holding it
    # 3) ~/.stockdesk
    data_dir = Path(os.getenv(ENV_DATA_DIR) or Path.home() / ".stockdesk")
    data_dir = data_dir.expanduser().resolve()

    db_env = os.getenv(ENV_DB_PATH)
    db_path = Path(db_env).expanduser() if db_env else data_dir / "stockdesk.sqlite"

    return Settings(
        data_dir=data_dir,
        db_path=db_path,
        admin_email=os.getenv(ENV_ADMIN_EMAIL) or Settings.admin_email,
        admin_password=os.getenv(ENV_ADMIN_PASSWORD) or Settings.admin_password,
        seed_demo=_flag(os.getenv(ENV_SEED_DEMO), True),
    )
