"""
Entrypoint module for uvicorn.

Run as:

    uvicorn wan_monitor.main:app --reload
"""

import logging

from wan_monitor.api import app  # FastAPI app  # noqa: F401
from wan_monitor.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
