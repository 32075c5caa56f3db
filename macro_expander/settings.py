"""
Runtime settings for the expansion pipeline.

Settings come from an optional JSON file, e.g.

  {
    "compiler": "clang",
    "compiler_args": ["-std=c11", "-Iinclude"],
    "extensions": [".c", ".h", ".inl"]
  }

and are validated into a frozen ``ExpanderSettings`` model.  The CLI layers
its own flags on top with ``with_overrides``.
"""

import json
import logging
import os
import shlex
from typing import FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".h", ".hpp", ".c", ".cpp")


def normalize_extension(ext: str) -> str:
    """'CPP' -> '.cpp', '.H' -> '.h'."""
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


class ExpanderSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    compiler: str = "cpp"
    preprocess_flag: str = "-E"
    compiler_args: List[str] = []
    extensions: FrozenSet[str] = frozenset(DEFAULT_EXTENSIONS)
    output_suffix: str = ".expanded"
    temp_dir: Optional[str] = None
    timeout: Optional[float] = None
    max_passes: int = 64

    @field_validator("compiler_args", mode="before")
    @classmethod
    def _split_args(cls, v: Union[str, List[str], None]):
        if v is None:
            return []
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, v):
        if isinstance(v, str):
            v = v.replace(",", " ").split()
        exts = frozenset(normalize_extension(e) for e in v if e.strip())
        if not exts:
            raise ValueError("extension whitelist must not be empty")
        return exts

    @field_validator("compiler")
    @classmethod
    def _check_compiler(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("compiler must not be empty")
        return v

    @field_validator("output_suffix")
    @classmethod
    def _check_suffix(cls, v: str) -> str:
        if not v:
            raise ValueError("output_suffix must not be empty")
        return v

    @field_validator("max_passes")
    @classmethod
    def _check_passes(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_passes must be at least 1")
        return v

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @property
    def invocation_template(self) -> str:
        """Preprocessor command line; the unit path is appended per call."""
        parts = [self.compiler, self.preprocess_flag, *self.compiler_args]
        return shlex.join(p for p in parts if p)

    def is_whitelisted(self, path: str) -> bool:
        return os.path.splitext(path)[1].lower() in self.extensions

    def with_overrides(self, **changes) -> "ExpanderSettings":
        """Return a re-validated copy; ``None`` values leave a field unchanged."""
        data = self.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        try:
            return ExpanderSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e


def load_settings(path: Optional[str] = None) -> ExpanderSettings:
    """Load settings from a JSON file; no path means defaults."""
    if not path:
        return ExpanderSettings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Settings file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")

    try:
        settings = ExpanderSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded settings from %s (compiler: %s)", path, settings.compiler)
    return settings
