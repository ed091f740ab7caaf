"""Client configuration loading with layered precedence.

Configuration precedence (highest wins):
1. Environment variables (ZZ_*), including values from a ``.env`` file
2. User config (~/.config/zz/config.json)
3. Built-in defaults

Usage:
    from zz.config import load_config, save_config

    config = load_config()
    if config is None:
        ...  # first run: no config file yet, run the setup wizard

Environment Variables:
    ZZ_MODEL: Model name passed to thread/start
    ZZ_APPROVAL_MODE: auto-approve | prompt | deny (default: prompt)
    ZZ_SANDBOX: read-only | workspace-write | full-access (default: workspace-write)
    ZZ_REASONING_ONLY: Show reasoning but omit the response text (default: false)
    ZZ_CODEX_BIN: Path to the codex binary (default: codex on PATH)
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "zz"
CONFIG_PATH = CONFIG_DIR / "config.json"


class ApprovalMode(str, Enum):
    """How approval requests from the backend are answered."""
    AUTO_APPROVE = "auto-approve"
    PROMPT = "prompt"
    DENY = "deny"


class SandboxMode(str, Enum):
    """Sandbox applied by the backend to executed commands."""
    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    FULL_ACCESS = "full-access"


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes", "on")


@dataclass
class Config:
    """Client configuration.

    Attributes:
        model: Model name, or None to let the backend choose.
        approval_mode: How approval requests are answered.
        sandbox: Sandbox mode for command execution.
        reasoning_only: Show reasoning but suppress the response text.
        codex_bin: Path to the codex binary, or None for ``codex`` on PATH.
        debug: Emit debug tags for response/command sections.
    """
    model: Optional[str] = None
    approval_mode: ApprovalMode = ApprovalMode.PROMPT
    sandbox: SandboxMode = SandboxMode.WORKSPACE_WRITE
    reasoning_only: bool = False
    codex_bin: Optional[str] = None
    debug: bool = False

    def __post_init__(self):
        """Validate and normalize configuration values."""
        try:
            self.approval_mode = ApprovalMode(self.approval_mode)
        except ValueError:
            raise ValueError(f"invalid approval mode: {self.approval_mode!r}")
        try:
            self.sandbox = SandboxMode(self.sandbox)
        except ValueError:
            raise ValueError(f"invalid sandbox mode: {self.sandbox!r}")
        if not isinstance(self.reasoning_only, bool):
            raise ValueError("reasoning_only must be a boolean")

    @property
    def protocol_approval_policy(self) -> str:
        """Approval policy sent in thread/start."""
        return "never" if self.approval_mode is ApprovalMode.AUTO_APPROVE else "untrusted"

    @property
    def protocol_sandbox(self) -> str:
        """Sandbox value sent in thread/start."""
        if self.sandbox is SandboxMode.FULL_ACCESS:
            return "danger-full-access"
        if self.sandbox is SandboxMode.READ_ONLY:
            return "read-only"
        return "workspace-write"

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form, as written to config.json (debug is not persisted)."""
        data = asdict(self)
        data["approval_mode"] = self.approval_mode.value
        data["sandbox"] = self.sandbox.value
        data.pop("debug")
        return {k: v for k, v in data.items() if v is not None}


# Maps config fields to environment variable names
ENV_VAR_MAPPING: Dict[str, str] = {
    "model": "ZZ_MODEL",
    "approval_mode": "ZZ_APPROVAL_MODE",
    "sandbox": "ZZ_SANDBOX",
    "reasoning_only": "ZZ_REASONING_ONLY",
    "codex_bin": "ZZ_CODEX_BIN",
}


def _apply_env_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to a config dict."""
    result = config_dict.copy()
    for key, env_var in ENV_VAR_MAPPING.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue
        if key == "reasoning_only":
            result[key] = _parse_bool(env_value)
        else:
            result[key] = env_value or None
        logger.debug(f"Applied env override: {env_var}={env_value}")
    return result


def _dict_to_config(data: Dict[str, Any]) -> Config:
    """Convert a dict to Config, ignoring unknown keys.

    Raises:
        ValueError: If a known key has an invalid value.
    """
    # Accept the camelCase keys used by earlier config files
    aliases = {"approvalMode": "approval_mode", "reasoningOnly": "reasoning_only", "codexBin": "codex_bin"}
    data = {aliases.get(k, k): v for k, v in data.items()}

    valid_fields = {f.name for f in fields(Config)}
    unknown = set(data.keys()) - valid_fields
    if unknown:
        logger.warning(f"Unknown config keys (ignored): {unknown}")

    return Config(**{k: v for k, v in data.items() if k in valid_fields})


def load_config(config_path: Path = CONFIG_PATH) -> Optional[Config]:
    """Load the client configuration.

    Args:
        config_path: Path of the user config file.

    Returns:
        Merged Config, or None if the config file does not exist or cannot
        be used.
    """
    if not config_path.exists():
        return None

    try:
        with open(config_path, encoding="utf-8") as f:
            file_config = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in {config_path}: {e}")
        return None
    except OSError as e:
        logger.warning(f"Failed to read {config_path}: {e}")
        return None

    if not isinstance(file_config, dict):
        logger.warning(f"Invalid config format in {config_path} (expected object)")
        return None

    merged = _apply_env_overrides(file_config)
    try:
        return _dict_to_config(merged)
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid config values in {config_path}: {e}")
        return None


def save_config(config: Config, config_path: Path = CONFIG_PATH) -> Path:
    """Write ``config`` as JSON, creating the directory if needed.

    Returns:
        The path written.
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8")
    logger.info(f"Saved config to {config_path}")
    return config_path


__all__ = [
    "ApprovalMode",
    "CONFIG_PATH",
    "Config",
    "SandboxMode",
    "load_config",
    "save_config",
]
