"""
Complex plane region and output resolution for a single generation request.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..exceptions import InvalidAreaError


@dataclass(frozen=True)
class ViewArea:
    """Rectangular region of the complex plane mapped onto a pixel grid.

    Pixel ``(px, py)`` maps to ``min_real + px * step_real`` on the real axis
    and ``min_imag + py * step_imag`` on the imaginary axis. Instances are
    immutable; every request builds its own.
    """

    min_real: float
    min_imag: float
    max_real: float
    max_imag: float
    pixel_width: int
    pixel_height: int

    def __post_init__(self):
        bounds = (self.min_real, self.min_imag, self.max_real, self.max_imag)
        for value in bounds:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidAreaError(f"Area bounds must be real numbers, got {value!r}")
            if not math.isfinite(value):
                raise InvalidAreaError(f"Area bounds must be finite, got {value!r}")

        if self.max_real <= self.min_real:
            raise InvalidAreaError(
                f"Invalid real bounds: max_real ({self.max_real}) must exceed min_real ({self.min_real})"
            )
        if self.max_imag <= self.min_imag:
            raise InvalidAreaError(
                f"Invalid imaginary bounds: max_imag ({self.max_imag}) must exceed min_imag ({self.min_imag})"
            )

        for name in ('pixel_width', 'pixel_height'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidAreaError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise InvalidAreaError(f"{name} must be positive, got {value}")

        # Finite bounds can still overflow the span
        if not (math.isfinite(self.step_real) and math.isfinite(self.step_imag)):
            raise InvalidAreaError(f"Area span is too large to sample: {self}")

    @classmethod
    def default(cls) -> 'ViewArea':
        """The full set at 640x480."""
        return cls(-2.0, -1.0, 1.0, 1.0, 640, 480)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ViewArea':
        """
        Create an area from a configuration mapping.

        Args:
            data: Mapping with the six field names of ``ViewArea``

        Returns:
            Validated view area
        """
        try:
            return cls(
                min_real=float(data['min_real']),
                min_imag=float(data['min_imag']),
                max_real=float(data['max_real']),
                max_imag=float(data['max_imag']),
                pixel_width=int(data['pixel_width']),
                pixel_height=int(data['pixel_height']),
            )
        except KeyError as e:
            raise InvalidAreaError(f"Missing area field: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            if isinstance(e, InvalidAreaError):
                raise
            raise InvalidAreaError(f"Malformed area definition: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            'min_real': self.min_real,
            'min_imag': self.min_imag,
            'max_real': self.max_real,
            'max_imag': self.max_imag,
            'pixel_width': self.pixel_width,
            'pixel_height': self.pixel_height,
        }

    @property
    def step_real(self) -> float:
        """Width of one pixel on the real axis."""
        return (self.max_real - self.min_real) / self.pixel_width

    @property
    def step_imag(self) -> float:
        """Height of one pixel on the imaginary axis."""
        return (self.max_imag - self.min_imag) / self.pixel_height

    @property
    def shape(self) -> Tuple[int, int]:
        """Array shape of the pixel grid, ``(rows, columns)``."""
        return (self.pixel_height, self.pixel_width)

    @property
    def pixel_count(self) -> int:
        return self.pixel_width * self.pixel_height

    def pixel_to_complex(self, px: int, py: int) -> complex:
        """Convert pixel coordinates to the complex number sampled there."""
        real = self.min_real + px * self.step_real
        imag = self.min_imag + py * self.step_imag
        return complex(real, imag)

    def complex_to_pixel(self, c: complex) -> Tuple[int, int]:
        """Convert a complex number to the pixel containing it."""
        px = int((c.real - self.min_real) / self.step_real)
        py = int((c.imag - self.min_imag) / self.step_imag)
        return px, py

    def __str__(self) -> str:
        return (f"[{self.min_real}, {self.max_real}] x [{self.min_imag}, {self.max_imag}] "
                f"@ {self.pixel_width}x{self.pixel_height}")
