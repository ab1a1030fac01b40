"""
Palette-based color mapping for iteration counts.

Color mappers are pure functions from an iteration array to an RGB array.
The controller hands one to its workers, which map their own tile right
after computing it; because the mapping is per pixel, a tiled image is
identical to one mapped as a whole.
"""

import numpy as np
from typing import Dict, List, Optional, Tuple, Union
from dataclasses import dataclass
import logging

from ..exceptions import InvalidSettingsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorRGB:
    """RGB color representation."""
    r: float
    g: float
    b: float

    def __post_init__(self):
        """Validate RGB values."""
        for component in [self.r, self.g, self.b]:
            if not 0 <= component <= 1:
                raise ValueError("RGB components must be between 0 and 1")

    def to_tuple(self) -> Tuple[float, float, float]:
        """Convert to RGB tuple."""
        return (self.r, self.g, self.b)

    def to_uint8_tuple(self) -> Tuple[int, int, int]:
        """Convert to 8-bit RGB tuple."""
        return (int(round(self.r * 255)), int(round(self.g * 255)), int(round(self.b * 255)))


class Palette:
    """Color palette with linear interpolation between evenly spaced stops."""

    def __init__(self, colors: List[Union[ColorRGB, Tuple[float, float, float]]],
                 name: str = "Custom"):
        """
        Initialize color palette.

        Args:
            colors: List of colors in the palette
            name: Human-readable name for the palette
        """
        self.name = name
        self.colors = []

        for color in colors:
            if isinstance(color, ColorRGB):
                self.colors.append(color)
            elif isinstance(color, (tuple, list)) and len(color) == 3:
                self.colors.append(ColorRGB(*color))
            else:
                raise ValueError(f"Invalid color format: {color}")

        if len(self.colors) < 2:
            raise ValueError("Palette must contain at least 2 colors")

        self._stops = np.array([c.to_tuple() for c in self.colors], dtype=np.float64)

    def interpolate(self, t: np.ndarray) -> np.ndarray:
        """
        Interpolate colors at positions ``t`` in [0, 1].

        Args:
            t: Array of palette positions; values outside [0, 1] are clipped

        Returns:
            Float RGB array of shape ``t.shape + (3,)``
        """
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
        positions = np.linspace(0.0, 1.0, len(self.colors))
        rgb = np.empty(t.shape + (3,), dtype=np.float64)
        for channel in range(3):
            rgb[..., channel] = np.interp(t, positions, self._stops[:, channel])
        return rgb

    def __len__(self) -> int:
        return len(self.colors)

    def __repr__(self) -> str:
        return f"Palette({self.name!r}, {len(self.colors)} colors)"


def _create_builtin_palettes() -> Dict[str, Palette]:
    """Create built-in color palettes."""
    palettes = {}

    palettes['hot'] = Palette([
        ColorRGB(0, 0, 0),      # Black
        ColorRGB(1, 0, 0),      # Red
        ColorRGB(1, 1, 0),      # Yellow
        ColorRGB(1, 1, 1),      # White
    ], name="Hot")

    palettes['cool'] = Palette([
        ColorRGB(0, 0, 0),      # Black
        ColorRGB(0, 0, 1),      # Blue
        ColorRGB(0, 1, 1),      # Cyan
        ColorRGB(1, 1, 1),      # White
    ], name="Cool")

    palettes['gray'] = Palette([
        ColorRGB(0, 0, 0),
        ColorRGB(1, 1, 1),
    ], name="Grayscale")

    palettes['fire'] = Palette([
        ColorRGB(0, 0, 0),          # Black
        ColorRGB(0.5, 0, 0),        # Dark red
        ColorRGB(1, 0, 0),          # Red
        ColorRGB(1, 0.5, 0),        # Orange
        ColorRGB(1, 1, 0),          # Yellow
        ColorRGB(1, 1, 1),          # White
    ], name="Fire")

    palettes['ocean'] = Palette([
        ColorRGB(0, 0, 0.2),        # Deep blue
        ColorRGB(0, 0, 0.8),        # Blue
        ColorRGB(0, 0.5, 1),        # Light blue
        ColorRGB(0, 1, 1),          # Cyan
        ColorRGB(0.5, 1, 1),        # Light cyan
        ColorRGB(1, 1, 1),          # White
    ], name="Ocean")

    palettes['rainbow'] = Palette([
        ColorRGB(1, 0, 0),      # Red
        ColorRGB(1, 0.5, 0),    # Orange
        ColorRGB(1, 1, 0),      # Yellow
        ColorRGB(0, 1, 0),      # Green
        ColorRGB(0, 1, 1),      # Cyan
        ColorRGB(0, 0, 1),      # Blue
        ColorRGB(0.5, 0, 1),    # Purple
    ], name="Rainbow")

    return palettes


BUILTIN_PALETTES = _create_builtin_palettes()


def get_palette(name: str) -> Palette:
    """Get a built-in color palette by name."""
    palette = BUILTIN_PALETTES.get(name.lower())
    if palette is None:
        available = ', '.join(BUILTIN_PALETTES.keys())
        raise InvalidSettingsError(f"Unknown color palette '{name}'. Available: {available}")
    return palette


def list_palettes() -> List[str]:
    return list(BUILTIN_PALETTES.keys())


class EscapeTimeColorMapper:
    """Map iteration counts linearly onto a palette; points inside the set get ``inside_color``."""

    def __init__(self, palette: Palette, max_iterations: int,
                 inside_color: Optional[ColorRGB] = None):
        if max_iterations < 1:
            raise InvalidSettingsError("max_iterations must be positive")
        self.palette = palette
        self.max_iterations = max_iterations
        self.inside_color = inside_color or ColorRGB(0, 0, 0)

    def __call__(self, iterations: np.ndarray) -> np.ndarray:
        """
        Apply escape-time coloring.

        Args:
            iterations: Iteration counts of any shape

        Returns:
            uint8 RGB array of shape ``iterations.shape + (3,)``
        """
        normalized = iterations.astype(np.float64) / self.max_iterations
        rgb = np.round(self.palette.interpolate(normalized) * 255).astype(np.uint8)

        inside = iterations >= self.max_iterations
        if np.any(inside):
            rgb[inside] = self.inside_color.to_uint8_tuple()
        return rgb


def create_color_mapper(palette_name: str, max_iterations: int,
                        inside_color: Optional[ColorRGB] = None) -> EscapeTimeColorMapper:
    """
    Build the escape-time mapper for a built-in palette.

    Args:
        palette_name: Name of a built-in palette
        max_iterations: Iteration cap used for normalization
        inside_color: Color for points that never escaped

    Returns:
        Color mapper callable
    """
    mapper = EscapeTimeColorMapper(get_palette(palette_name), max_iterations, inside_color)
    logger.debug(f"Color mapper: palette={palette_name}, max_iterations={max_iterations}")
    return mapper
