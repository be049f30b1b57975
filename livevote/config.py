"""Configuration for the live vote board."""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .models import EqualAveragePolicy

logger = logging.getLogger(__name__)

load_dotenv()

# Base data directory - configurable via environment
DATA_BASE_DIR = os.getenv("LIVEVOTE_DATA_DIR", "data")

# User config file path
USER_CONFIG_FILE = os.path.join(DATA_BASE_DIR, "user_config.json")

# Rating bounds accepted by the voting form
MIN_RATING = 1
MAX_RATING = 10

# Label shown when the voter's name cannot be resolved
ANONYMOUS_PARTICIPANT = "Anonymous"

# How far below/above the new average a reveal animation starts
REVEAL_START_OFFSET = 1.0

# Reveal timing defaults, in seconds
DEFAULT_SUSPENSE_DELAY = float(os.getenv("LIVEVOTE_SUSPENSE_DELAY", "3.0"))
DEFAULT_REVEAL_DURATION = float(os.getenv("LIVEVOTE_REVEAL_DURATION", "1.5"))
DEFAULT_LABEL_CLEAR_DELAY = float(os.getenv("LIVEVOTE_LABEL_CLEAR_DELAY", "4.0"))

# Upper bound on the participant name lookup before falling back to anonymous
NAME_LOOKUP_TIMEOUT = float(os.getenv("LIVEVOTE_NAME_LOOKUP_TIMEOUT", "2.0"))

# How often the board re-resolves today's group
GROUP_POLL_INTERVAL = float(os.getenv("LIVEVOTE_GROUP_POLL_INTERVAL", "60"))

# Direction reported when a refresh yields the same average as before
DEFAULT_EQUAL_AVERAGE_POLICY = os.getenv("LIVEVOTE_EQUAL_AVERAGE_POLICY", "unchanged")


@dataclass(frozen=True)
class RevealTimings:
    """Fixed delays driving a reveal sequence."""

    suspense_delay: float = DEFAULT_SUSPENSE_DELAY
    reveal_duration: float = DEFAULT_REVEAL_DURATION
    label_clear_delay: float = DEFAULT_LABEL_CLEAR_DELAY

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def load_user_config() -> dict[str, Any]:
    """
    Load user configuration from file.

    Returns:
        Dict with user config or empty dict if not found
    """
    config_path = Path(USER_CONFIG_FILE)
    if config_path.exists():
        try:
            with open(config_path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable user config. Path: %s", config_path)
            return {}
    return {}


def save_user_config(config: dict[str, Any]) -> None:
    """
    Save user configuration to file.

    Args:
        config: Configuration dict to save
    """
    config_path = Path(USER_CONFIG_FILE)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        json.dump(config, f, indent=2)


def get_reveal_timings() -> RevealTimings:
    """
    Get effective reveal timings (user config over defaults).

    Returns:
        RevealTimings with any user overrides applied
    """
    overrides = load_user_config().get('reveal_timings', {})
    return RevealTimings(
        suspense_delay=float(overrides.get('suspense_delay', DEFAULT_SUSPENSE_DELAY)),
        reveal_duration=float(overrides.get('reveal_duration', DEFAULT_REVEAL_DURATION)),
        label_clear_delay=float(overrides.get('label_clear_delay', DEFAULT_LABEL_CLEAR_DELAY)),
    )


def get_equal_average_policy() -> EqualAveragePolicy:
    """
    Get the effective tie-break policy for equal averages.

    Unknown names are logged and treated as ``unchanged``.
    """
    user_config = load_user_config()
    name = user_config.get('equal_average_policy', DEFAULT_EQUAL_AVERAGE_POLICY)
    try:
        return EqualAveragePolicy(str(name).strip().lower())
    except ValueError:
        logger.warning(
            "Unknown equal average policy, using %s. Policy: %r",
            EqualAveragePolicy.UNCHANGED.value, name,
        )
        return EqualAveragePolicy.UNCHANGED


def update_reveal_timings(
    suspense_delay: float | None = None,
    reveal_duration: float | None = None,
    label_clear_delay: float | None = None,
) -> RevealTimings:
    """
    Update reveal timing overrides.

    Args:
        suspense_delay: New suspense delay (None to keep current)
        reveal_duration: New count-up duration (None to keep current)
        label_clear_delay: New label-clear delay (None to keep current)

    Returns:
        Effective timings after the update
    """
    config = load_user_config()
    timings = config.setdefault('reveal_timings', {})

    if suspense_delay is not None:
        timings['suspense_delay'] = suspense_delay
    if reveal_duration is not None:
        timings['reveal_duration'] = reveal_duration
    if label_clear_delay is not None:
        timings['label_clear_delay'] = label_clear_delay

    save_user_config(config)
    return get_reveal_timings()


def reload_config() -> dict[str, Any]:
    """
    Reload configuration from .env and user config files.

    Timings apply to groups activated after the reload.

    Returns:
        Dict with reload status and current config
    """
    global DEFAULT_SUSPENSE_DELAY, DEFAULT_REVEAL_DURATION, DEFAULT_LABEL_CLEAR_DELAY
    global NAME_LOOKUP_TIMEOUT, GROUP_POLL_INTERVAL, DEFAULT_EQUAL_AVERAGE_POLICY

    load_dotenv(override=True)

    DEFAULT_SUSPENSE_DELAY = float(os.getenv("LIVEVOTE_SUSPENSE_DELAY", "3.0"))
    DEFAULT_REVEAL_DURATION = float(os.getenv("LIVEVOTE_REVEAL_DURATION", "1.5"))
    DEFAULT_LABEL_CLEAR_DELAY = float(os.getenv("LIVEVOTE_LABEL_CLEAR_DELAY", "4.0"))
    NAME_LOOKUP_TIMEOUT = float(os.getenv("LIVEVOTE_NAME_LOOKUP_TIMEOUT", "2.0"))
    GROUP_POLL_INTERVAL = float(os.getenv("LIVEVOTE_GROUP_POLL_INTERVAL", "60"))
    DEFAULT_EQUAL_AVERAGE_POLICY = os.getenv("LIVEVOTE_EQUAL_AVERAGE_POLICY", "unchanged")

    logger.info("Configuration reloaded")

    return {
        "status": "reloaded",
        "reveal_timings": get_reveal_timings().to_dict(),
        "equal_average_policy": get_equal_average_policy().value,
        "name_lookup_timeout": NAME_LOOKUP_TIMEOUT,
        "group_poll_interval": GROUP_POLL_INTERVAL,
    }
