"""Environment configuration.

Values come from the process environment, optionally seeded from a
``.env`` file via python-dotenv.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .api.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CAP_CATEGORIES = ("10",)
DEFAULT_CEILING_CATEGORIES = ("09", "10")
DEFAULT_HARD_CEILING = 180


def _split_csv(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


@dataclass
class EngineSettings:
    """Runtime settings for the equipment engine and its HTTP surface."""

    provisioning_base_url: str = ""
    provisioning_api_token: Optional[str] = None
    database_url: Optional[str] = None
    api_key: Optional[str] = None
    disable_auth: bool = False
    reg_uid: str = "SYSTEM"
    log_level: str = "INFO"

    # Quantity caps
    cap_categories: tuple[str, ...] = DEFAULT_CAP_CATEGORIES
    cap_ceiling_categories: tuple[str, ...] = DEFAULT_CEILING_CATEGORIES
    cap_allowlist_products: tuple[str, ...] = field(default_factory=tuple)
    cap_hard_ceiling: int = DEFAULT_HARD_CEILING

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "EngineSettings":
        """Build settings from environment variables.

        Args:
            dotenv: Load a .env file first (existing variables win)

        Raises:
            ConfigurationError: If a numeric setting cannot be parsed
        """
        if dotenv:
            load_dotenv()

        ceiling_raw = os.getenv("CAP_HARD_CEILING", str(DEFAULT_HARD_CEILING))
        try:
            ceiling = int(ceiling_raw)
        except ValueError as e:
            raise ConfigurationError(
                f"CAP_HARD_CEILING must be an integer, got {ceiling_raw!r}",
                cause=e,
            )

        return cls(
            provisioning_base_url=os.getenv("PROVISIONING_BASE_URL", "").rstrip("/"),
            provisioning_api_token=os.getenv("PROVISIONING_API_TOKEN") or None,
            database_url=os.getenv("DATABASE_URL") or None,
            api_key=os.getenv("API_KEY") or None,
            disable_auth=_env_bool("DISABLE_AUTH"),
            reg_uid=os.getenv("REG_UID", "SYSTEM"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cap_categories=_split_csv(os.getenv("CAP_CATEGORIES")) or DEFAULT_CAP_CATEGORIES,
            cap_ceiling_categories=(
                _split_csv(os.getenv("CAP_CEILING_CATEGORIES")) or DEFAULT_CEILING_CATEGORIES
            ),
            cap_allowlist_products=_split_csv(os.getenv("CAP_ALLOWLIST_PRODUCTS")),
            cap_hard_ceiling=ceiling,
        )

    def require(self, *names: str) -> None:
        """Raise ConfigurationError if any of the named settings is empty."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                missing_keys=[name.upper() for name in missing],
            )


def configure_logging(level: str = "INFO") -> None:
    """Install the root logging format used by the CLI and the API."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
