"""Configuration loading for patch conversion and application."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, Tuple

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_NAME = "patchwright.yaml"
DEFAULT_PROBE_ORDER: Tuple[int, ...] = (1, 0, 2, 3, 4)
DEFAULT_MAX_PATCH_BYTES = 200_000

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "workspace": {
        "root": ".",
    },
    "patch": {
        "tool": "patch",
        "probe_order": list(DEFAULT_PROBE_ORDER),
        "extra_args": ["--batch"],
        "timeout": None,
        "max_patch_bytes": DEFAULT_MAX_PATCH_BYTES,
    },
    "paths": {
        "artifacts": ".patchwright/runs",
        "protected": [".git"],
    },
    "logging": {
        "level": "INFO",
        "telemetry": True,
    },
}


@dataclass(slots=True)
class PatchSettings:
    """Normalised settings consumed by the patch pipeline."""

    root: Path = field(default_factory=Path.cwd)
    patch_tool: str = "patch"
    probe_order: Tuple[int, ...] = DEFAULT_PROBE_ORDER
    extra_args: Tuple[str, ...] = ("--batch",)
    timeout: float | None = None
    max_patch_bytes: int = DEFAULT_MAX_PATCH_BYTES
    artifacts_dir: Path | None = Path(".patchwright/runs")
    protected: Tuple[str, ...] = (".git",)
    log_level: str = "INFO"
    telemetry: bool = True

    def __post_init__(self) -> None:
        self.root = Path(self.root).resolve()

    @property
    def artifacts_root(self) -> Path | None:
        """Absolute artifact directory, or ``None`` when auditing is disabled."""
        if self.artifacts_dir is None:
            return None
        candidate = Path(self.artifacts_dir)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        return candidate

    def with_root(self, root: Path | str) -> "PatchSettings":
        return replace(self, root=Path(root))

    @classmethod
    def from_mapping(
        cls,
        config: Mapping[str, Any],
        *,
        base_dir: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "PatchSettings":
        """Interpret a loaded YAML mapping, falling back to defaults per key."""
        env_mapping = env if env is not None else os.environ
        base = Path(base_dir) if base_dir is not None else Path.cwd()

        workspace_cfg = _section(config, "workspace")
        patch_cfg = _section(config, "patch")
        paths_cfg = _section(config, "paths")
        logging_cfg = _section(config, "logging")

        root_value = workspace_cfg.get("root", ".")
        root = Path(root_value) if isinstance(root_value, str) and root_value.strip() else Path(".")
        if not root.is_absolute():
            root = base / root

        tool = patch_cfg.get("tool")
        patch_tool = tool.strip() if isinstance(tool, str) and tool.strip() else "patch"
        env_tool = env_mapping.get("PATCHWRIGHT_PATCH_TOOL")
        if env_tool and env_tool.strip():
            patch_tool = env_tool.strip()

        probe_order = _int_tuple(patch_cfg.get("probe_order")) or DEFAULT_PROBE_ORDER

        extra_raw = patch_cfg.get("extra_args", ["--batch"])
        extra_args: Tuple[str, ...] = ("--batch",)
        if isinstance(extra_raw, Sequence) and not isinstance(extra_raw, str):
            extra_args = tuple(str(item) for item in extra_raw if str(item).strip())

        timeout: float | None = None
        timeout_value = patch_cfg.get("timeout")
        if isinstance(timeout_value, (int, float)) and not isinstance(timeout_value, bool) and timeout_value > 0:
            timeout = float(timeout_value)

        max_patch_bytes = DEFAULT_MAX_PATCH_BYTES
        env_limit = env_mapping.get("PATCHWRIGHT_MAX_PATCH_BYTES")
        if env_limit is not None:
            try:
                parsed = int(str(env_limit).strip())
                if parsed > 0:
                    max_patch_bytes = parsed
            except ValueError:
                pass
        candidate = patch_cfg.get("max_patch_bytes")
        if isinstance(candidate, int) and not isinstance(candidate, bool) and candidate > 0:
            max_patch_bytes = candidate
        elif isinstance(candidate, str):
            try:
                parsed = int(candidate.strip())
                if parsed > 0:
                    max_patch_bytes = parsed
            except ValueError:
                pass

        artifacts_dir: Path | None = Path(".patchwright/runs")
        if "artifacts" in paths_cfg:
            artifacts_value = paths_cfg.get("artifacts")
            if artifacts_value in (None, False, ""):
                artifacts_dir = None
            elif isinstance(artifacts_value, str):
                artifacts_dir = Path(artifacts_value.strip())

        protected: Tuple[str, ...] = (".git",)
        protected_raw = paths_cfg.get("protected")
        if isinstance(protected_raw, Sequence) and not isinstance(protected_raw, str):
            protected = tuple(str(item).strip("/") for item in protected_raw if str(item).strip("/"))

        level = logging_cfg.get("level", "INFO")
        log_level = level.strip().upper() if isinstance(level, str) and level.strip() else "INFO"
        telemetry = bool(logging_cfg.get("telemetry", True))

        return cls(
            root=root,
            patch_tool=patch_tool,
            probe_order=probe_order,
            extra_args=extra_args,
            timeout=timeout,
            max_patch_bytes=max_patch_bytes,
            artifacts_dir=artifacts_dir,
            protected=protected,
            log_level=log_level,
            telemetry=telemetry,
        )


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = config.get(name)
    if isinstance(value, Mapping):
        return value
    return {}


def _int_tuple(raw: Any) -> Tuple[int, ...]:
    """Coerce a YAML list of strip levels, dropping invalid entries."""
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        return ()
    levels: list[int] = []
    for item in raw:
        if isinstance(item, bool):
            continue
        try:
            level = int(item)
        except (TypeError, ValueError):
            continue
        if level >= 0 and level not in levels:
            levels.append(level)
    return tuple(levels)


def load_config(config_path: Path | str) -> Dict[str, Any]:
    """Load YAML configuration from disk; a missing file yields an empty mapping."""
    path = Path(config_path)
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping at the top level: {path}")
    return data


def load_settings(
    config_path: Path | str | None = None,
    *,
    root: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> PatchSettings:
    """Load :class:`PatchSettings` from ``config_path`` (default ``./patchwright.yaml``)."""
    path = Path(config_path) if config_path is not None else Path.cwd() / DEFAULT_CONFIG_NAME
    data = load_config(path)
    settings = PatchSettings.from_mapping(data, base_dir=path.resolve().parent, env=env)
    if root is not None:
        settings = settings.with_root(root)
    return settings


def write_default_config(config_path: Path | str) -> Path:
    """Persist the default configuration template with stable formatting."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(copy.deepcopy(DEFAULT_CONFIG_TEMPLATE), handle, sort_keys=False)
    return path


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "PatchSettings",
    "load_config",
    "load_settings",
    "write_default_config",
]
