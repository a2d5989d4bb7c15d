import logging
import os
import colorlog
from callbridge.config.environment import config

LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}

def resolve_level(level=None):
    """Explicit level, else LOG_LEVEL from the environment, else `logging.level` in config.yml."""
    if level is None:
        level = os.getenv("LOG_LEVEL") or config.get("logging.level", "INFO")
    if isinstance(level, str):
        resolved = getattr(logging, level.strip().upper(), None)
        return resolved if isinstance(resolved, int) else logging.INFO
    return level

def setup_logging(level=None):
    """Colored root logger for the bridge; transport libraries are held at WARNING."""
    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(
        '%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        log_colors=LOG_COLORS
    ))

    root = colorlog.getLogger()
    # uvicorn reload imports the app twice
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolve_level(level))

    for name in config.get("logging.quiet", ["httpx", "httpcore", "websockets"]):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
