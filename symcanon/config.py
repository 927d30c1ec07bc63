"""
Simplifier configuration and logging setup.

Settings come from keyword arguments or from SYMCANON_* environment
variables:

    SYMCANON_TIMEOUT      seconds allowed per rational canonicalization (5.0)
    SYMCANON_MAX_PASSES   pipeline repetitions before giving up (8)
    SYMCANON_MAX_DEPTH    nested canonicalization budget (16)
    SYMCANON_MEMOIZE      "false" disables analyzer caches (true)
    SYMCANON_LOG_LEVEL    level used by configure_logging() (WARNING)
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from .errors import SimplifyTimeout

_ENV_PREFIX = "SYMCANON"


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{_ENV_PREFIX}_{name}", default)


@dataclass(frozen=True)
class SimplifierConfig:
    """Tunable limits for a Simplifier."""

    timeout_seconds: Optional[float] = 5.0
    max_passes: int = 8
    max_depth: int = 16
    memoize: bool = True

    @classmethod
    def from_env(cls) -> "SimplifierConfig":
        """Build a config from SYMCANON_* environment variables."""
        timeout = _env("TIMEOUT", "5.0").strip().lower()
        return cls(
            timeout_seconds=None if timeout in ("", "none", "0") else float(timeout),
            max_passes=int(_env("MAX_PASSES", "8")),
            max_depth=int(_env("MAX_DEPTH", "16")),
            memoize=_env("MEMOIZE", "true").lower() != "false",
        )


class Deadline:
    """
    Cooperative time budget.

    Long-running loops call check(), which raises SimplifyTimeout once the
    budget is spent. A Deadline with no budget never expires.
    """

    __slots__ = ("_expires_at",)

    def __init__(self, seconds: Optional[float] = None):
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() > self._expires_at

    def check(self) -> None:
        if self.expired:
            raise SimplifyTimeout()

    def __repr__(self) -> str:
        if self._expires_at is None:
            return "Deadline(unbounded)"
        return f"Deadline({self._expires_at - time.monotonic():.3f}s left)"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a stream handler to the package logger.

    The library itself only installs a NullHandler; applications and
    scripts call this to see simplifier warnings.
    """
    level_name = (level or _env("LOG_LEVEL", "WARNING")).upper()
    logger = logging.getLogger("symcanon")
    logger.setLevel(getattr(logging, level_name, logging.WARNING))
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(handler)
    return logger
