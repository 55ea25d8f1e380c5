import logging
import sys
from pathlib import Path

from taskcal.core.config import LOG_DIR, LOG_LEVEL

NOISY_LIBRARIES = ('googleapiclient', 'google_auth_httplib2', 'firebase_admin', 'urllib3')


class _ConsoleNoiseFilter(logging.Filter):
    """Keep our own logs on the console; only errors from third-party code."""

    def filter(self, record):
        if record.name == 'taskcal' or record.name.startswith('taskcal.') or record.name == '__main__':
            return True
        return record.levelno >= logging.ERROR


def setup_logging(log_dir=LOG_DIR, console_level=None, file_level=logging.DEBUG):
    """Install a filtered console handler and a full debug log file.

    Call once at startup, before anything logs.
    """
    if console_level is None:
        console_level = logging.getLevelName(LOG_LEVEL.upper())
        if not isinstance(console_level, int):
            console_level = logging.INFO

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    log_file = logging.FileHandler(str(log_dir / 'taskcal.log'), encoding='utf-8')
    log_file.setLevel(file_level)
    log_file.setFormatter(fmt)
    root.addHandler(log_file)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.INFO)

    logging.captureWarnings(True)
