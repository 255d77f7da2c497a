from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .models import WatermarkerSettings

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:3]]

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in broken installs
    raise FileNotFoundError("Default config.yaml could not be located; ensure the package was installed with its data files.")


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def make_runtime_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    load_dotenv()
    base = OmegaConf.create(OmegaConf.to_container(_load_default_config(), resolve=False))
    OmegaConf.set_struct(base, True)

    merged = OmegaConf.merge(base, OmegaConf.create(overrides or {}))
    return DictConfig(merged)


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> WatermarkerSettings:
    """
    Build validated service settings.

    The packaged config.yaml supplies defaults, environment variables (and a
    .env file, if present) fill its ${oc.env:...} slots, and overrides are
    merged last. Unknown override keys are rejected.

    Args:
        overrides: Values taking precedence over file and environment

    Returns:
        WatermarkerSettings ready to hand to create_app
    """
    config = make_runtime_config(overrides)
    container = OmegaConf.to_container(config, resolve=True)
    return WatermarkerSettings.model_validate(container)
