"""Launcher: loads .env, sets up logging, then runs the Streamlit dashboard."""
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
os.chdir(ROOT)

from config import load_settings
from logging_utils import configure_logging


def main() -> int:
    settings = load_settings(ROOT)
    configure_logging(settings.log_level, settings.logs_dir)
    logging.getLogger(__name__).info(
        "Starting dashboard (data=%s, locale=%s)", settings.data_dir, settings.number_locale.value
    )

    sys.argv = ["streamlit", "run", str(ROOT / "app.py")]
    from streamlit.web import cli as stcli
    return stcli.main()


if __name__ == "__main__":
    sys.exit(main())
