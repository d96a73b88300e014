from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
  logging.basicConfig(
    level=getattr(logging, (level or "INFO").upper(), logging.INFO),
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
  )
  # httpx logs every request at INFO; keep it for debugging only.
  logging.getLogger("httpx").setLevel(logging.WARNING)
