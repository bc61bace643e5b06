import os
import logging
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from .models import AppConfig, EncodingProfile, DEFAULT_PROFILE_NAME

CONFIG_FILENAME = "encodarr.yaml"

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "general": {
        "concurrency": 2,
        "data_dir": "/data",
        "transcode_dir": "/transcode",
        "output_dir": "/out",
        "debug": False,
        "progress_interval_s": 60,
        "clean_temp_on_start": True,
    },
    "profiles": {
        "default": {
            "extension": "mkv",
            "delay_minutes": 0,
            "path_mappings": [],
            "file_renames": [],
            "selection": {
                "audio": {
                    "primary": [
                        {"clauses": [{"property": "language", "operator": "==", "value": "eng"}]},
                    ],
                    "allow_secondary": False,
                },
                "subtitle": {
                    "primary": [
                        {"clauses": [{"property": "language", "operator": "==", "value": "eng"}]},
                    ],
                    "allow_secondary": False,
                },
            },
            "encoder_rules": [
                {
                    "kind": "video",
                    "description": "Re-encode video to HEVC",
                    "result": {"codec": "libx265", "crf": "22", "preset": "medium"},
                },
                {
                    "kind": "video",
                    "description": "Downscale anything above 1080p",
                    "clauses": [{"property": "height", "operator": ">", "value": 1080}],
                    "result": {"size": "1920:-2"},
                },
                {
                    "kind": "video",
                    "description": "Tonemap HDR sources to SDR",
                    "clauses": [{"property": "is_hdr", "operator": "==", "value": True}],
                    "result": {"tonemap": True},
                },
            ],
        }
    },
}

_ENV_OVERRIDES = {
    "DATA_DIR": "data_dir",
    "TRANSCODE_DIR": "transcode_dir",
    "OUT_DIR": "output_dir",
    "CONCURRENCY": "concurrency",
    "DEBUG": "debug",
}


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """``$CONFIG_DIR/encodarr.yaml`` when CONFIG_DIR is set, else ``conf/encodarr.yaml``."""
    environ = os.environ if environ is None else environ
    config_dir = environ.get("CONFIG_DIR")
    if config_dir:
        return Path(config_dir) / CONFIG_FILENAME
    return Path("conf") / CONFIG_FILENAME


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Overlay the deployment's environment variables onto the ``general`` section."""
    environ = os.environ if environ is None else environ
    general = dict(data.get("general") or {})
    for var, field in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            general[field] = value
    data["general"] = general
    return data


def load_config(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model.

    JSON is valid YAML, so legacy ``config.json`` files load as well.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    return AppConfig(**apply_env_overrides(data, environ))


def ensure_config_exists(config_path: Path) -> bool:
    """Write the default configuration when ``config_path`` is missing.

    Returns True when a new file was created.
    """
    if config_path.exists():
        return False
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, sort_keys=False)
    logger.warning(f"Configuration file not found. Created {config_path} with defaults.")
    return True


class ProfileRegistry:
    """Read-only view over the configured profiles."""

    def __init__(self, profiles: Mapping[str, EncodingProfile]):
        if DEFAULT_PROFILE_NAME not in profiles:
            raise ValueError(f"profiles must define a '{DEFAULT_PROFILE_NAME}' profile")
        self._profiles = dict(profiles)
        self.logger = logging.getLogger(__name__)

    @property
    def names(self):
        return list(self._profiles)

    def resolve(self, name: Optional[str] = None) -> EncodingProfile:
        """Return the named profile, or the default one for None or an unknown name."""
        if name and name in self._profiles:
            return self._profiles[name]
        if name:
            self.logger.debug(f"Unknown profile {name!r}, using {DEFAULT_PROFILE_NAME!r}")
        return self._profiles[DEFAULT_PROFILE_NAME]
