from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Tuple

from pygame.math import Vector2

if TYPE_CHECKING:
    from .agent import Cell

_PAIR_OFFSETS: Tuple[Tuple[int, int], ...] = tuple((dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1))


class SpatialGrid:
    def __init__(self, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"grid cell size must be positive, got {cell_size}")
        self._cell_size = cell_size
        self._cells: Dict[Tuple[int, int], List["Cell"]] = {}
        self._active_keys: List[Tuple[int, int]] = []
        self._neighbor_scratch: List["Cell"] = []

    @property
    def cell_size(self) -> float:
        return self._cell_size

    def clear(self) -> None:
        for key in self._active_keys:
            bucket = self._cells.get(key)
            if bucket:
                bucket.clear()
        self._active_keys.clear()

    def insert(self, cell: "Cell") -> None:
        key = self._cell_key(cell.position)
        bucket = self._cells.get(key)
        if bucket is None:
            bucket = []
            self._cells[key] = bucket
            self._active_keys.append(key)
        elif not bucket:
            # Bucket exists but was cleared at the start of this tick; mark it active again.
            self._active_keys.append(key)
        bucket.append(cell)

    def rebuild(self, cells: Iterable["Cell"]) -> None:
        self.clear()
        for cell in cells:
            if cell.alive:
                self.insert(cell)

    def get_neighbors(self, position: Vector2, radius: float) -> List["Cell"]:
        """Return cells strictly closer than ``radius`` to ``position``.

        The returned list is a reused scratch buffer; consume it before the next query.
        """

        self._neighbor_scratch.clear()
        base_key = self._cell_key(position)
        cell_range = int(math.ceil(radius / self._cell_size))
        radius_sq = radius * radius
        pos_x = position.x
        pos_y = position.y

        for dx in range(-cell_range, cell_range + 1):
            for dy in range(-cell_range, cell_range + 1):
                bucket = self._cells.get((base_key[0] + dx, base_key[1] + dy))
                if not bucket:
                    continue
                for cell in bucket:
                    pos = cell.position
                    offset_x = pos.x - pos_x
                    offset_y = pos.y - pos_y
                    if offset_x * offset_x + offset_y * offset_y < radius_sq:
                        self._neighbor_scratch.append(cell)
        return self._neighbor_scratch

    def candidate_pairs(self) -> Iterator[Tuple["Cell", "Cell"]]:
        """Yield every unordered pair sharing a 3x3 neighborhood exactly once.

        A pair is emitted from the cell with the smaller id, so the result does
        not depend on bucket or insertion order.
        """

        cells = self._cells
        for key in self._active_keys:
            for first in cells[key]:
                for dx, dy in _PAIR_OFFSETS:
                    bucket = cells.get((key[0] + dx, key[1] + dy))
                    if not bucket:
                        continue
                    for second in bucket:
                        if second.id <= first.id:
                            continue
                        yield first, second

    def _cell_key(self, position: Vector2) -> Tuple[int, int]:
        return (int(position.x // self._cell_size), int(position.y // self._cell_size))
