from __future__ import annotations

from dataclasses import dataclass

from .config import ViewportConfig


@dataclass(frozen=True, slots=True)
class Vessel:
    """Horizontal tube: longitudinal bounds ``x0..x1``, centerline ``y0`` and radius ``R``."""

    x0: float
    x1: float
    y0: float
    R: float

    def __post_init__(self) -> None:
        if self.R <= 0:
            raise ValueError(f"vessel radius must be positive, got {self.R}")
        if self.x1 <= self.x0:
            raise ValueError(f"vessel x1 ({self.x1}) must be greater than x0 ({self.x0})")

    @classmethod
    def from_viewport(cls, viewport: ViewportConfig) -> "Vessel":
        return cls(
            x0=viewport.padding,
            x1=viewport.width - viewport.padding,
            y0=viewport.height * 0.5,
            R=min(viewport.height * viewport.max_radius_fraction, viewport.max_radius),
        )

    @property
    def top(self) -> float:
        return self.y0 - self.R

    @property
    def bottom(self) -> float:
        return self.y0 + self.R

    def normalized_offset(self, y: float) -> float:
        return (y - self.y0) / self.R
