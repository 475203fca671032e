# Copyright 2025-present The Arbor Authors.
# Licensed under the Apache License, Version 2.0.
# See http://www.apache.org/licenses/LICENSE-2.0 for details.

"""
Configuration models and loader.

Example arbor.yml:
    storage:
      db_path: ~/.arbor/data
      db_name: arbor.db
      connection_string: ${ARBOR_DATABASE_URL}
    tree:
      closure_batch_size: 500
    logging:
      log_dir: ~/.arbor/logs
      level: INFO
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError

from arbor.utils.exceptions import ArborException, ErrorCode
from arbor.utils.loggings import get_logger

logger = get_logger(__name__)

CONFIG_ENV_VAR = "ARBOR_CONFIG"
DEFAULT_CONFIG_LOCATIONS = ("conf/arbor.yml", "~/.arbor/arbor.yml")

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


class StorageConfig(BaseModel):
    db_path: str = Field(default="~/.arbor/data", description="Directory holding the SQLite file")
    db_name: str = Field(default="arbor.db", description="SQLite filename")
    connection_string: Optional[str] = Field(default=None, description="SQLAlchemy URL override")
    busy_timeout: float = Field(default=5.0, gt=0, description="Seconds to wait on a locked database")

    @field_validator("connection_string")
    def validate_connection_string(cls, v):
        if not v:
            return None
        try:
            make_url(v)
        except ArgumentError as e:
            raise ValueError(f"invalid SQLAlchemy URL '{v}'") from e
        return v

    def resolved_db_path(self) -> str:
        return os.path.abspath(os.path.expanduser(self.db_path))


class TreeSettings(BaseModel):
    closure_batch_size: int = Field(default=500, gt=0, description="Parent ids per frontier lookup")


class LoggingConfig(BaseModel):
    log_dir: Optional[str] = Field(default="~/.arbor/logs")
    level: str = Field(default="INFO")


class TreeConfig(BaseModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tree: TreeSettings = Field(default_factory=TreeSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    source: Optional[str] = Field(default=None, description="File the config was read from")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TreeConfig":
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ArborException(ErrorCode.COMMON_CONFIG_ERROR, message_args={"config_error": str(e)}) from e

    def store_kwargs(self) -> Dict[str, Any]:
        return {
            "db_path": self.storage.resolved_db_path(),
            "db_name": self.storage.db_name,
            "connection_string": self.storage.connection_string,
            "busy_timeout": self.storage.busy_timeout,
        }


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda m: os.getenv(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def resolve_config_path(config: Optional[str] = None) -> Optional[Path]:
    """Explicit path, then $ARBOR_CONFIG, then the default locations."""
    if config:
        path = Path(config).expanduser()
        if not path.is_file():
            raise ArborException(
                ErrorCode.COMMON_CONFIG_ERROR, message_args={"config_error": f"Config file not found: {path}"}
            )
        return path

    env_path = os.getenv(CONFIG_ENV_VAR)
    candidates = ([env_path] if env_path else []) + list(DEFAULT_CONFIG_LOCATIONS)
    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_file():
            return path
    return None


def load_tree_config(config: Optional[str] = None, load_env: bool = True) -> TreeConfig:
    """Load configuration from YAML, applying ``${VAR}`` expansion and env overrides.

    Args:
        config: Explicit config file path (must exist when given)
        load_env: Read a ``.env`` file from the working directory first

    Returns:
        TreeConfig; defaults when no file is found
    """
    if load_env:
        load_dotenv()

    path = resolve_config_path(config)
    data: Dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ArborException(
                ErrorCode.COMMON_CONFIG_ERROR, message_args={"config_error": f"Invalid YAML in {path}: {e}"}
            ) from e
        if not isinstance(data, dict):
            raise ArborException(
                ErrorCode.COMMON_CONFIG_ERROR, message_args={"config_error": f"{path} must contain a mapping"}
            )
        logger.debug(f"Loaded config from {path}")

    data = _expand_env(data)
    storage = dict(data.get("storage") or {})
    if os.getenv("ARBOR_DB_PATH"):
        storage["db_path"] = os.environ["ARBOR_DB_PATH"]
    if os.getenv("ARBOR_CONNECTION_STRING"):
        storage["connection_string"] = os.environ["ARBOR_CONNECTION_STRING"]
    data["storage"] = storage
    data["source"] = str(path) if path else None

    return TreeConfig.from_dict(data)
