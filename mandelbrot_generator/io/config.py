"""
Configuration management for the generation engine.

Settings are assembled from defaults, an optional JSON or YAML file,
``MANDELBROT_*`` environment variables and explicit overrides, in that
order of precedence. The engine only ever reads them.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging

import yaml

from ..core.tiling import DEFAULT_GRID_SCALE, TILING_STRATEGIES, TilingStrategy, create_tiling_strategy
from ..core.view_area import ViewArea
from ..exceptions import InvalidAreaError, InvalidSettingsError
from ..rendering.coloring import get_palette

logger = logging.getLogger(__name__)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


@dataclass(frozen=True)
class EngineSettings:
    """Configuration consumed by the generation engine."""

    # Kernel parameters
    max_iterations: int = 1000
    escape_radius: float = 2.0

    # Scheduling
    pool_size: Optional[int] = None  # None for the available CPU count
    tiling: str = 'grid'
    tile_scale: int = DEFAULT_GRID_SCALE
    tiles_per_worker: int = 4

    # Optional color mapping; None keeps raw iteration counts
    palette: Optional[str] = None

    # Area used when a caller does not supply one
    area: ViewArea = field(default_factory=ViewArea.default)

    def validate(self) -> 'EngineSettings':
        """Validate configuration parameters."""
        if not _is_positive_int(self.max_iterations):
            raise InvalidSettingsError("max_iterations must be a positive integer")

        if not isinstance(self.escape_radius, (int, float)) or not self.escape_radius > 0:
            raise InvalidSettingsError("escape_radius must be positive")

        if self.pool_size is not None and not _is_positive_int(self.pool_size):
            raise InvalidSettingsError("pool_size must be an integer >= 1")

        if self.tiling not in TILING_STRATEGIES:
            available = ', '.join(TILING_STRATEGIES.keys())
            raise InvalidSettingsError(f"Unknown tiling strategy '{self.tiling}'. Available: {available}")

        if not _is_positive_int(self.tile_scale):
            raise InvalidSettingsError("tile_scale must be an integer >= 1")

        if not _is_positive_int(self.tiles_per_worker):
            raise InvalidSettingsError("tiles_per_worker must be an integer >= 1")

        if self.palette is not None:
            get_palette(self.palette)

        return self

    def create_tiling(self) -> TilingStrategy:
        """Build the tiling strategy named by ``tiling``."""
        if self.tiling == 'processor':
            return create_tiling_strategy('processor', tiles_per_worker=self.tiles_per_worker,
                                          worker_count=self.pool_size)
        return create_tiling_strategy(self.tiling, scale=self.tile_scale)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['area'] = self.area.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EngineSettings':
        """
        Create settings from a mapping, ignoring unknown keys with a warning.

        Args:
            data: Mapping of field names to values

        Returns:
            Validated settings
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting: {key}")
                continue
            values[key] = value

        if 'area' in values and not isinstance(values['area'], ViewArea):
            try:
                values['area'] = ViewArea.from_dict(values['area'])
            except InvalidAreaError as e:
                raise InvalidSettingsError(f"Invalid area: {e}") from e

        try:
            settings = cls(**values)
        except TypeError as e:
            raise InvalidSettingsError(str(e)) from e
        return settings.validate()

    def merged(self, **overrides) -> 'EngineSettings':
        """Copy with the non-None ``overrides`` applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes).validate()


class EnvironmentConfig:
    """Settings overrides read from ``MANDELBROT_*`` environment variables."""

    PREFIX = 'MANDELBROT_'

    CONVERTERS = {
        'max_iterations': int,
        'escape_radius': float,
        'pool_size': int,
        'tiling': str,
        'tile_scale': int,
        'tiles_per_worker': int,
        'palette': str,
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    def get_overrides(self) -> Dict[str, Any]:
        """Collect typed overrides from the environment."""
        overrides = {}
        for name, convert in self.CONVERTERS.items():
            raw = self.environ.get(self.PREFIX + name.upper())
            if raw is None or raw == '':
                continue
            try:
                overrides[name] = convert(raw)
            except ValueError as e:
                raise InvalidSettingsError(f"Invalid value for {self.PREFIX + name.upper()}: {raw!r}") from e
        if overrides:
            logger.debug(f"Environment overrides: {overrides}")
        return overrides


class ConfigManager:
    """Load and write engine configuration files."""

    SUPPORTED_SUFFIXES = ('.json', '.yaml', '.yml')

    def load_config(self, path: Union[str, Path]) -> Dict[str, Any]:
        """
        Read a JSON or YAML configuration file.

        Args:
            path: Configuration file path

        Returns:
            Parsed mapping
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in self.SUPPORTED_SUFFIXES:
            raise InvalidSettingsError(f"Unsupported config format '{suffix}'. "
                                       f"Supported: {', '.join(self.SUPPORTED_SUFFIXES)}")

        with open(path, 'r', encoding='utf-8') as fh:
            try:
                if suffix == '.json':
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh)
            except (json.JSONDecodeError, yaml.YAMLError) as e:
                raise InvalidSettingsError(f"Could not parse {path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidSettingsError(f"{path} must contain a mapping at the top level")

        logger.info(f"Loaded configuration: {path}")
        return data

    def load_settings(self, path: Optional[Union[str, Path]] = None,
                      environ: Optional[Mapping[str, str]] = None,
                      **overrides) -> EngineSettings:
        """
        Assemble settings from file, environment and explicit overrides.

        Args:
            path: Optional configuration file
            environ: Environment mapping (defaults to ``os.environ``)
            **overrides: Highest-precedence values; None entries are ignored

        Returns:
            Validated settings
        """
        data: Dict[str, Any] = {}
        if path is not None:
            data.update(self.load_config(path))
        data.update(EnvironmentConfig(environ).get_overrides())
        data.update({k: v for k, v in overrides.items() if v is not None})
        return EngineSettings.from_dict(data)

    def export_config_template(self, path: Union[str, Path],
                               settings: Optional[EngineSettings] = None) -> Path:
        """
        Write a configuration file with the given (or default) settings.

        Args:
            path: Output path; the suffix selects JSON or YAML
            settings: Settings to write

        Returns:
            Path written
        """
        path = Path(path)
        data = (settings or EngineSettings()).to_dict()

        with open(path, 'w', encoding='utf-8') as fh:
            if path.suffix.lower() == '.json':
                json.dump(data, fh, indent=2)
            else:
                yaml.safe_dump(data, fh, sort_keys=False)

        logger.info(f"Wrote configuration template: {path}")
        return path


def load_settings(path: Optional[Union[str, Path]] = None, **overrides) -> EngineSettings:
    """Shortcut for ``ConfigManager().load_settings``."""
    return ConfigManager().load_settings(path, **overrides)
