from __future__ import annotations

import itertools
import random

from pygame.math import Vector2

from bloodflow.sim.core.agent import Cell, CellType
from bloodflow.sim.core.spatial_grid import SpatialGrid
from bloodflow.sim.systems.neighbors import NeighborIndex

_TYPE = CellType(key="T", name="Test", radius=4.0, mass=1.0, margin_bias=0.0)


def _cells(positions):
    return [Cell(id=idx, cell_type=_TYPE, position=Vector2(pos)) for idx, pos in enumerate(positions)]


def test_neighbor_query_matches_bruteforce():
    grid = SpatialGrid(cell_size=2.5)
    cells = _cells([(0, 0), (1, 1), (3, 0.5), (6, 6), (-2, -1.5)])
    for cell in cells:
        grid.insert(cell)

    center = Vector2(1, 1)
    radius = 3.0
    found = sorted(cell.id for cell in grid.get_neighbors(center, radius))
    brute = sorted(cell.id for cell in cells if (cell.position - center).length_squared() < radius * radius)
    assert found == brute


def test_neighbor_query_excludes_exact_radius():
    grid = SpatialGrid(cell_size=5.0)
    cells = _cells([(0, 0), (3, 0)])
    for cell in cells:
        grid.insert(cell)

    assert [cell.id for cell in grid.get_neighbors(Vector2(0, 0), 3.0)] == [0]


def test_candidate_pairs_are_unique_and_cover_all_close_pairs():
    rng = random.Random(5)
    cells = _cells([(rng.uniform(0, 60), rng.uniform(0, 60)) for _ in range(80)])
    grid = SpatialGrid(cell_size=8.0)
    grid.rebuild(cells)

    pairs = [(a.id, b.id) for a, b in grid.candidate_pairs()]

    assert len(pairs) == len(set(pairs))
    assert all(a < b for a, b in pairs)
    close = {
        (a.id, b.id)
        for a, b in itertools.combinations(cells, 2)
        if a.position.distance_to(b.position) < 8.0
    }
    assert close <= set(pairs)


def test_rebuild_skips_dead_cells_and_clears_previous_tick():
    cells = _cells([(0, 0), (1, 0)])
    cells[1].alive = False
    grid = SpatialGrid(cell_size=4.0)
    grid.rebuild(cells)
    assert [cell.id for cell in grid.get_neighbors(Vector2(0, 0), 3.0)] == [0]

    cells[0].position.update(100.0, 100.0)
    grid.rebuild(cells)
    assert grid.get_neighbors(Vector2(0, 0), 3.0) == []


def test_neighbor_index_grid_and_scan_agree():
    rng = random.Random(9)
    cells = _cells([(rng.uniform(0, 100), rng.uniform(0, 100)) for _ in range(60)])
    scan = NeighborIndex(cells)
    grid = NeighborIndex(cells, SpatialGrid(cell_size=20.0))

    assert grid.uses_grid and not scan.uses_grid
    for query_cell in cells[:15]:
        assert scan.count_within(query_cell.position, 35.0) == grid.count_within(query_cell.position, 35.0)
        assert scan.count_type_within(query_cell.position, "T", 30.0) == grid.count_type_within(
            query_cell.position, "T", 30.0
        )
