from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from pygame.math import Vector2

from ..utils.math2d import _clamp_length
from .config import CellTypeConfig


@dataclass(frozen=True, slots=True)
class CellType:
    key: str
    name: str
    radius: float
    mass: float
    margin_bias: float
    color: Tuple[int, int, int] = (200, 200, 200)
    adhesion: Optional[float] = None
    policy_driven: bool = False
    immune: bool = False

    def __post_init__(self) -> None:
        if self.mass <= 0:
            raise ValueError(f"cell type {self.key!r} needs a positive mass, got {self.mass}")
        if self.radius <= 0:
            raise ValueError(f"cell type {self.key!r} needs a positive radius, got {self.radius}")

    @classmethod
    def from_config(cls, key: str, config: CellTypeConfig) -> "CellType":
        return cls(
            key=key,
            name=config.name,
            radius=config.radius,
            mass=config.mass,
            margin_bias=config.margin_bias,
            color=tuple(config.color),
            adhesion=config.adhesion,
            policy_driven=config.policy_driven,
            immune=config.immune,
        )


@dataclass(slots=True)
class Cell:
    id: int
    cell_type: CellType
    position: Vector2
    velocity: Vector2 = field(default_factory=Vector2)
    acceleration: Vector2 = field(default_factory=Vector2)
    alive: bool = True
    fitness: float = 0.0
    reproduction_cooldown: int = 0
    generation: int = 0

    @property
    def radius(self) -> float:
        return self.cell_type.radius

    @property
    def mass(self) -> float:
        return self.cell_type.mass

    def apply_force(self, force: Vector2) -> None:
        self.acceleration += force / self.mass

    def integrate(self, damping: float, max_speed: float) -> None:
        """Advance one tick. Call once, after every force for the tick was applied."""
        self.velocity += self.acceleration
        self.velocity *= damping
        self.velocity = _clamp_length(self.velocity, max_speed)
        self.position += self.velocity
        self.acceleration.update(0.0, 0.0)
