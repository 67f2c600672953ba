"""Configuration system for ubspectre.
Supports TOML configuration files with project-level and user-level settings.
"""
from __future__ import annotations
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from ubspectre.core.bytes import Endianness, Target
from ubspectre.logging import LogLevel, get_logger
CONFIG_FILES = [
    "ubspectre.toml",
    ".ubspectre.toml",
    "pyproject.toml",
]
@dataclass
class TargetConfig:
    """Machine parameters for the interpreted program."""
    ptr_size: int = 8
    endianness: str = "little"
    def to_target(self) -> Target:
        """Build the ``Target`` these settings describe."""
        if self.ptr_size not in (1, 2, 4, 8, 16):
            raise ValueError(f"unsupported pointer size: {self.ptr_size}")
        return Target(ptr_size=self.ptr_size, endianness=Endianness(self.endianness))
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "ptr_size": self.ptr_size,
            "endianness": self.endianness,
        }
@dataclass
class ChoiceConfig:
    """How non-deterministic choices are resolved."""
    address_strategy: str = "lowest"
    seed: int | None = None
    solver_timeout_ms: int = 10000
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "address_strategy": self.address_strategy,
            "seed": self.seed,
            "solver_timeout_ms": self.solver_timeout_ms,
        }
@dataclass
class LimitsConfig:
    """Resource limits for one execution."""
    max_steps: int = 1_000_000
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_steps": self.max_steps,
        }
@dataclass
class OutputConfig:
    """What the interpreter prints, and how."""
    verbosity: str = "normal"
    color: bool = True
    echo_stdout: bool = False
    def log_level(self) -> LogLevel:
        try:
            return LogLevel[self.verbosity.upper()]
        except KeyError:
            raise ValueError(f"unknown verbosity: {self.verbosity!r}") from None
    def to_dict(self) -> dict[str, Any]:
        """Plain dict, as written under ``[tool.ubspectre.output]``."""
        return {
            "verbosity": self.verbosity,
            "color": self.color,
            "echo_stdout": self.echo_stdout,
        }
@dataclass
class UbSpectreConfig:
    """Main configuration for ubspectre."""
    target: TargetConfig = field(default_factory=TargetConfig)
    choice: ChoiceConfig = field(default_factory=ChoiceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    project_root: Path | None = None
    config_file: Path | None = None
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "target": self.target.to_dict(),
            "choice": self.choice.to_dict(),
            "limits": self.limits.to_dict(),
            "output": self.output.to_dict(),
        }
    def to_toml(self) -> str:
        """Generate TOML configuration string."""
        lines = ["[tool.ubspectre]", ""]
        for section, values in self.to_dict().items():
            lines.append(f"[tool.ubspectre.{section}]")
            for key, value in values.items():
                if value is None:
                    continue
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                else:
                    lines.append(f"{key} = {value}")
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"
def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Find configuration file by walking up directory tree.
    A ``pyproject.toml`` only counts if it has a ``[tool.ubspectre]`` table.
    """
    if start_dir is None:
        start_dir = Path.cwd()
    current = start_dir.resolve()
    while True:
        for config_name in CONFIG_FILES:
            config_path = current / config_name
            if config_path.exists():
                if config_name != "pyproject.toml" or _has_tool_section(config_path):
                    return config_path
        if current == current.parent:
            break
        current = current.parent
    home = Path.home()
    for config_name in [".ubspectre.toml", "ubspectre.toml"]:
        config_path = home / config_name
        if config_path.exists():
            return config_path
    return None
def _has_tool_section(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return False
    return "ubspectre" in data.get("tool", {})
def load_config(
    config_path: Path | None = None,
    start_dir: Path | None = None,
) -> UbSpectreConfig:
    """Load configuration from file or use defaults.
    Args:
        config_path: Explicit path to config file
        start_dir: Directory to start searching for config
    Returns:
        Loaded configuration
    """
    config = UbSpectreConfig()
    if config_path is None:
        config_path = find_config_file(start_dir)
    if config_path is None or not config_path.exists():
        return config
    config.config_file = config_path
    config.project_root = config_path.parent
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        get_logger().warning(f"Failed to parse config file {config_path}: {e}")
        return config
    if config_path.name == "pyproject.toml":
        tool_data = data.get("tool", {}).get("ubspectre", {})
    else:
        tool_data = data.get("tool", {}).get("ubspectre", data)
    _apply_config(config, tool_data)
    return config
def _apply_config(config: UbSpectreConfig, data: dict[str, Any]) -> None:
    """Apply configuration data to config object."""
    if "target" in data:
        tgt_data = data["target"]
        for key in ["ptr_size", "endianness"]:
            if key in tgt_data:
                setattr(config.target, key, tgt_data[key])
    if "choice" in data:
        cho_data = data["choice"]
        for key in ["address_strategy", "seed", "solver_timeout_ms"]:
            if key in cho_data:
                setattr(config.choice, key, cho_data[key])
    if "limits" in data:
        lim_data = data["limits"]
        if "max_steps" in lim_data:
            config.limits.max_steps = int(lim_data["max_steps"])
    if "output" in data:
        out_data = data["output"]
        for key in ["verbosity", "color", "echo_stdout"]:
            if key in out_data:
                setattr(config.output, key, out_data[key])
def generate_default_config() -> str:
    """Generate default configuration file content."""
    config = UbSpectreConfig()
    return config.to_toml()
__all__ = [
    "CONFIG_FILES",
    "TargetConfig",
    "ChoiceConfig",
    "LimitsConfig",
    "OutputConfig",
    "UbSpectreConfig",
    "find_config_file",
    "load_config",
    "generate_default_config",
]
