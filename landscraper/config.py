"""Runtime settings loaded from YAML with environment overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .fetch import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

CONFIG_FILE = "landscraper.yml"

# Kaduwela MC, Kotte MC and Colombo MC areas.
DEFAULT_LOCATIONS = (
    "battaramulla", "pelawatta", "thalawathugoda", "malabe",
    "athurugiriya", "kaduwela", "ranala", "hewagama", "hokandara",
    "rajagiriya", "ethul kotte", "etul kotte", "pita kotte",
    "nawala", "nugegoda", "pagoda", "gangodawila", "welikada",
    "mattakkuliya", "modara", "borella", "cinnamon gardens",
    "havelock town", "wellawatta", "wellawatte", "pamankada", "kirulapona",
    "colombo 01", "colombo 02", "colombo 03", "colombo 04", "colombo 05",
    "colombo 06", "colombo 07", "colombo 08", "colombo 09", "colombo 10",
    "colombo 1", "colombo 2", "colombo 3", "colombo 4", "colombo 5",
    "colombo 6", "colombo 7", "colombo 8", "colombo 9",
)

ENV_OVERRIDES = {
    "LANDSCRAPER_STORE": "store_path",
    "LANDSCRAPER_REGION_MAP": "region_map_path",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    store_path: Path = Path("landscraper-data.json")
    region_map_path: Optional[Path] = None
    page_delay: float = Field(2.5, ge=0)
    detail_delay: float = Field(0.5, ge=0)
    settle_delay: float = Field(1.5, ge=0)
    request_timeout: float = Field(30.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    target_locations: List[str] = Field(default_factory=lambda: list(DEFAULT_LOCATIONS))
    log_level: str = "INFO"

    @field_validator("target_locations")
    @classmethod
    def _lowercase_locations(cls, value: List[str]) -> List[str]:
        return [location.strip().lower() for location in value if location and location.strip()]

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()


def load_settings(path: Optional[str | os.PathLike[str]] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from *path* (default ``landscraper.yml``) and *env*.

    A missing default file is fine; a missing explicit *path* is an error.
    """

    env = os.environ if env is None else env
    config_path = Path(path) if path is not None else Path(CONFIG_FILE)

    data = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle.read()) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{config_path} must contain a mapping of settings")
        data.update(loaded)
        logger.debug("Loaded settings from %s", config_path)
    elif path is not None:
        raise FileNotFoundError(f"Settings file not found: {config_path}")

    for variable, name in ENV_OVERRIDES.items():
        if env.get(variable):
            data[name] = env[variable]
    return Settings.model_validate(data)


__all__ = ["CONFIG_FILE", "DEFAULT_LOCATIONS", "Settings", "load_settings"]
