"""
Runtime settings, read from the environment and an optional .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from metrics import TOP_N
from normalizer import NumberLocale
from store import BATCH_SIZE

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_MODEL = "gpt-4o-mini"


def load_env_from_project(project_dir: str | Path) -> None:
    for d in [Path(project_dir), BASE_DIR, Path.cwd()]:
        env_file = d / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


@dataclass
class Settings:
    data_dir: Path
    number_locale: NumberLocale = NumberLocale.LEGACY
    top_n: int = TOP_N
    batch_size: int = BATCH_SIZE
    openai_model: str = DEFAULT_MODEL
    log_level: str = "INFO"
    logs_dir: Path | None = None

    @property
    def migration_flag_path(self) -> Path:
        return self.data_dir / "migration.json"

    @property
    def legacy_dir(self) -> Path:
        return self.data_dir / "legacy"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_settings(project_dir: str | Path = BASE_DIR) -> Settings:
    load_env_from_project(project_dir)

    locale_raw = os.getenv("SALES_NUMBER_LOCALE", NumberLocale.LEGACY.value).strip().lower()
    try:
        locale = NumberLocale(locale_raw)
    except ValueError:
        options = ", ".join(l.value for l in NumberLocale)
        raise ValueError(f"SALES_NUMBER_LOCALE must be one of: {options}") from None

    logs_dir = os.getenv("SALES_LOGS_DIR")
    return Settings(
        data_dir=Path(os.getenv("SALES_DATA_DIR") or BASE_DIR / "data"),
        number_locale=locale,
        top_n=_int_env("SALES_TOP_N", TOP_N),
        batch_size=_int_env("SALES_BATCH_SIZE", BATCH_SIZE),
        openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
        log_level=(os.getenv("SALES_LOG_LEVEL") or "INFO").upper(),
        logs_dir=Path(logs_dir) if logs_dir else None,
    )
