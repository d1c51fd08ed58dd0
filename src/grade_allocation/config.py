"""
Configuration for the grade allocation engine.

Values come from environment variables (optionally via a ``.env`` file) and
are frozen into an :class:`EngineSettings` object that callers build once and
pass into the builders and allocators.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_CITY_WIDE_REGION: str = "全市"
DEFAULT_BOOST_PHRASE: str = "两周一访上浮100%"
DEFAULT_ALLOCATION_MODE: str = "broadcast"
DEFAULT_LOG_LEVEL: str = "INFO"

LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class EngineSettings:
    """
    Rule tables and switches shared by one planning run.
    """

    city_wide_region: str = DEFAULT_CITY_WIDE_REGION
    boost_phrase: str = DEFAULT_BOOST_PHRASE
    allocation_mode: str = DEFAULT_ALLOCATION_MODE
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            city_wide_region=os.getenv(
                "GRADE_ALLOCATION_CITY_WIDE_REGION", DEFAULT_CITY_WIDE_REGION
            ),
            boost_phrase=os.getenv("GRADE_ALLOCATION_BOOST_PHRASE", DEFAULT_BOOST_PHRASE),
            allocation_mode=os.getenv("GRADE_ALLOCATION_MODE", DEFAULT_ALLOCATION_MODE),
            log_level=os.getenv("GRADE_ALLOCATION_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        )


def configure_logging(settings: EngineSettings) -> None:
    """Attach a basic handler to the root logger at the configured level."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
