from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

DEFAULT_LOG_PATH = "/data/debroot/debroot.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Reported as the log destination when no file could be opened.
CONSOLE_ONLY = "<stderr>"

_MARKER = "_debroot_log_path"


def _open_log_file(candidates: List[Path], errors: List[str]) -> Optional[logging.FileHandler]:
    for path in candidates:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            errors.append(f"{path}: {e.strerror or e}")
    return None


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send every lifecycle decision and external command to a log file.

    The file always records DEBUG, so captured command output is kept even
    when the console is quieter. An unwritable log_path falls back to
    ./debroot.log, and when that fails too only the console is used.
    Console output goes to stderr; stdout is reserved for `status`.

    Safe to call more than once: later calls only adjust the console level.
    Returns the path actually written, or CONSOLE_ONLY.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    configured = getattr(root, _MARKER, None)
    if configured:
        for h in root.handlers:
            if not isinstance(h, logging.FileHandler):
                h.setLevel(level)
        return configured

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    errors: List[str] = []
    file_handler = _open_log_file([Path(log_path), Path.cwd() / "debroot.log"], errors)
    if file_handler is not None:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    # Without a file the console is the only record, so it cannot be off.
    if also_console or file_handler is None:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(fmt)
        root.addHandler(console)

    chosen = file_handler.baseFilename if file_handler is not None else CONSOLE_ONLY
    setattr(root, _MARKER, chosen)
    if chosen != str(Path(log_path).absolute()):
        logging.getLogger(__name__).warning(
            "Cannot write %s; logging to %s (%s)", log_path, chosen, "; ".join(errors)
        )
    return chosen
