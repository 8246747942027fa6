"""chartsmith configuration system.

Configuration is YAML-based with CLI overrides for per-run options
(--template, --theme, --width, --height, --quality).
Supports environment variable substitution (${VAR}) in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.chartsmith/config.yaml
3. ./chartsmith.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

QUALITY_LEVELS = ("low", "medium", "high")

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class RenderConfig:
    """Defaults applied when a render request leaves an option unset.

    Attributes:
        default_template: Template id used when none is requested
        default_theme: Theme activated at startup
        width: Document width written into the data tree
        height: Document height written into the data tree
        quality: Numeric precision level (low, medium, high)
        minify: Collapse whitespace between tags when compiling templates
        optimize: Drop unreferenced <defs> children and duplicate <style> blocks
        animations: Add a fade-in style block to the output
        interactivity: Add hover styles for sections and items
    """

    default_template: str = "section_grid"
    default_theme: str = "classic"
    width: int = 800
    height: int = 600
    quality: str = "high"
    minify: bool = True
    optimize: bool = True
    animations: bool = False
    interactivity: bool = False

    def __post_init__(self) -> None:
        """Validate render defaults."""
        if self.quality not in QUALITY_LEVELS:
            raise ValueError(f"Invalid quality: {self.quality}. Valid: {QUALITY_LEVELS}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Dimensions must be positive (got {self.width}x{self.height})")


@dataclass
class CacheConfig:
    """Bounded cache sizes.

    Attributes:
        enabled: Whether rendered output is cached
        max_generations: Maximum cached rendered outputs
        max_data_entries: Maximum remembered data trees (diff baselines)
        max_template_renders: Maximum cached template-level renders
    """

    enabled: bool = True
    max_generations: int = 100
    max_data_entries: int = 100
    max_template_renders: int = 100

    def __post_init__(self) -> None:
        """Validate cache sizes."""
        for name in ("max_generations", "max_data_entries", "max_template_renders"):
            if getattr(self, name) < 1:
                raise ValueError(f"cache.{name} must be at least 1")


@dataclass
class IncrementalConfig:
    """Incremental update policy.

    The three thresholds guard different degenerate patches: many tiny edits
    (operation count), one huge edit (size ratio) and deep rebuilds
    (complexity).

    Attributes:
        enabled: Whether patching is attempted at all
        max_snapshots: Snapshots kept as diff baselines
        max_patches: Patches kept in history
        max_size_ratio: Patch size / prior output size must stay below this
        max_operations: Operation count must stay below this
        max_complexity: Mean operation weight must stay below this
        fallback_on_apply_failure: Re-render fully when any operation fails to apply
    """

    enabled: bool = True
    max_snapshots: int = 50
    max_patches: int = 100
    max_size_ratio: float = 0.3
    max_operations: int = 20
    max_complexity: float = 0.7
    fallback_on_apply_failure: bool = False

    def __post_init__(self) -> None:
        """Validate incremental policy."""
        if self.max_snapshots < 1 or self.max_patches < 1:
            raise ValueError("incremental.max_snapshots and max_patches must be at least 1")
        if not 0 < self.max_size_ratio <= 1:
            raise ValueError(f"incremental.max_size_ratio must be in (0, 1] (got {self.max_size_ratio})")
        if not 0 < self.max_complexity <= 1:
            raise ValueError(f"incremental.max_complexity must be in (0, 1] (got {self.max_complexity})")


@dataclass
class PathsConfig:
    """Extra directories scanned for template and theme YAML files."""

    templates: list[str] = field(default_factory=list)
    themes: list[str] = field(default_factory=list)


@dataclass
class ChartsmithConfig:
    """Top-level chartsmith configuration.

    Attributes:
        render: Render defaults
        cache: Cache sizes
        incremental: Patch policy
        paths: Extra template/theme directories
    """

    render: RenderConfig = field(default_factory=RenderConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    incremental: IncrementalConfig = field(default_factory=IncrementalConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(value: Any) -> Any:
    """Substitute ${VAR} references in config values.

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return _ENV_PATTERN.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find a configuration file in the standard locations.

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    start_path = (start_path or Path.cwd()).resolve()

    candidates = [
        start_path / ".chartsmith" / "config.yaml",
        start_path / "chartsmith.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return section


def load_config_from_dict(data: dict[str, Any]) -> ChartsmithConfig:
    """Load configuration from a dictionary.

    Unknown keys are ignored; missing keys keep their defaults.
    """
    data = substitute_env_vars(data)
    config = ChartsmithConfig()

    if "render" in data:
        render = _section(data, "render")
        defaults = config.render
        config.render = RenderConfig(
            default_template=render.get("default_template", defaults.default_template),
            default_theme=render.get("default_theme", defaults.default_theme),
            width=int(render.get("width", defaults.width)),
            height=int(render.get("height", defaults.height)),
            quality=render.get("quality", defaults.quality),
            minify=bool(render.get("minify", defaults.minify)),
            optimize=bool(render.get("optimize", defaults.optimize)),
            animations=bool(render.get("animations", defaults.animations)),
            interactivity=bool(render.get("interactivity", defaults.interactivity)),
        )

    if "cache" in data:
        cache = _section(data, "cache")
        config.cache = CacheConfig(
            enabled=bool(cache.get("enabled", True)),
            max_generations=int(cache.get("max_generations", 100)),
            max_data_entries=int(cache.get("max_data_entries", 100)),
            max_template_renders=int(cache.get("max_template_renders", 100)),
        )

    if "incremental" in data:
        inc = _section(data, "incremental")
        config.incremental = IncrementalConfig(
            enabled=bool(inc.get("enabled", True)),
            max_snapshots=int(inc.get("max_snapshots", 50)),
            max_patches=int(inc.get("max_patches", 100)),
            max_size_ratio=float(inc.get("max_size_ratio", 0.3)),
            max_operations=int(inc.get("max_operations", 20)),
            max_complexity=float(inc.get("max_complexity", 0.7)),
            fallback_on_apply_failure=bool(inc.get("fallback_on_apply_failure", False)),
        )

    if "paths" in data:
        paths = _section(data, "paths")
        config.paths = PathsConfig(
            templates=list(paths.get("templates") or []),
            themes=list(paths.get("themes") or []),
        )

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> ChartsmithConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        ChartsmithConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path: Path | None = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is None:
        return ChartsmithConfig()

    with open(found_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    config = load_config_from_dict(data)
    config._config_path = found_path
    return config


def create_default_config() -> str:
    """Create default configuration YAML content."""
    return """# chartsmith configuration

render:
  default_template: "section_grid"
  default_theme: "classic"   # classic, dark, minimal or a theme from paths.themes
  width: 800
  height: 600
  quality: "high"            # low, medium, high (decimal places in numeric output)
  minify: true
  optimize: true              # drop unreferenced <defs> and duplicate <style> blocks
  animations: false
  interactivity: false

cache:
  enabled: true
  max_generations: 100
  max_data_entries: 100
  max_template_renders: 100

# Patch instead of re-render when all three thresholds hold
incremental:
  enabled: true
  max_snapshots: 50
  max_patches: 100
  max_size_ratio: 0.3
  max_operations: 20
  max_complexity: 0.7
  fallback_on_apply_failure: false

# Extra YAML template/theme directories
# paths:
#   templates: [".chartsmith/templates"]
#   themes: [".chartsmith/themes"]
"""
