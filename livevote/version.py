"""Build and runtime information reported by ``/api/version``."""

import os
import platform
import subprocess
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

# Semantic version - update this when releasing
__version__ = "0.3.0"

_STARTED_AT = time.monotonic()

UNKNOWN = "unknown"


@dataclass(frozen=True)
class BuildInfo:
    """What is running on the board server."""

    version: str
    commit: str
    build_time: str
    python: str

    @property
    def short_commit(self) -> str:
        return self.commit if self.commit == UNKNOWN else self.commit[:7]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "commit": self.commit,
            "commit_short": self.short_commit,
            "build_time": self.build_time,
            "python": self.python,
        }


def _read_commit() -> str:
    # Image builds pass the commit in; local checkouts ask git
    commit = os.getenv("GIT_COMMIT", UNKNOWN)
    if commit != UNKNOWN:
        return commit

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
            check=True,
        )
    except (subprocess.SubprocessError, OSError):
        return UNKNOWN
    return result.stdout.strip() or UNKNOWN


@lru_cache
def get_build_info() -> BuildInfo:
    """Build information, resolved once per process."""
    return BuildInfo(
        version=os.getenv("APP_VERSION", __version__),
        commit=_read_commit(),
        build_time=os.getenv("BUILD_TIME", UNKNOWN),
        python=platform.python_version(),
    )


def uptime_seconds() -> float:
    """Seconds since the server process imported this module."""
    return round(time.monotonic() - _STARTED_AT, 1)
