from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

from pygame.math import Vector2

if TYPE_CHECKING:
    from ..core.agent import Cell
    from ..core.spatial_grid import SpatialGrid


class NeighborIndex:
    """Distance queries over the live cells of one tick.

    Backed by the spatial grid when one is supplied, otherwise a direct scan
    over ``cells``. Both use the same strict ``distance < radius`` test.
    """

    def __init__(self, cells: Sequence[Cell], grid: Optional[SpatialGrid] = None) -> None:
        self._cells = cells
        self._grid = grid
        self._scan_scratch: List[Cell] = []
        if grid is not None:
            grid.rebuild(cells)

    @property
    def uses_grid(self) -> bool:
        return self._grid is not None

    def within(self, position: Vector2, radius: float) -> List[Cell]:
        if self._grid is not None:
            return self._grid.get_neighbors(position, radius)
        out = self._scan_scratch
        out.clear()
        radius_sq = radius * radius
        for cell in self._cells:
            if not cell.alive:
                continue
            if cell.position.distance_squared_to(position) < radius_sq:
                out.append(cell)
        return out

    def count_within(self, position: Vector2, radius: float) -> int:
        return len(self.within(position, radius))

    def count_type_within(self, position: Vector2, type_key: str, radius: float) -> int:
        return sum(1 for cell in self.within(position, radius) if cell.cell_type.key == type_key)
