from __future__ import annotations

import logging
import sys


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    log_level = getattr(logging, str(level).upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level!r}")
    if log_format == "json":
        formatter = logging.Formatter('{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=log_level, handlers=[handler], force=True)
