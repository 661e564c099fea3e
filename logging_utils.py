"""Logging setup shared by the app and the command-line launcher."""
import logging
from pathlib import Path

SYSTEM_FMT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", logs_dir: str | Path | None = None) -> logging.Logger:
    """Console handler, plus logs_dir/system.log when a directory is given.

    Handlers are reset on every call, so Streamlit reruns do not duplicate output.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter(SYSTEM_FMT))
    root.addHandler(sh)

    if logs_dir:
        path = Path(logs_dir).expanduser().resolve()
        try:
            path.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(path / "system.log", encoding="utf-8")
        except OSError as exc:
            root.warning("Failed to attach file handler in %s (%s)", path, exc)
        else:
            fh.setFormatter(logging.Formatter(SYSTEM_FMT))
            root.addHandler(fh)
    return root
