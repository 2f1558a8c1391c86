"""Tests for dgremap/monotonicity/dofs.py

Tests cover the dof connectivity tables:
    - fill_neighbor_dofs: coincident dofs across faces
    - get_common_elem: diagonal neighbors through two face neighbors
    - get_vertex_bounds_map: elements bounding every dof
    - fill_subcell_to_cell_dof: subcell corner dofs
    - compute_element_bounds / compute_vertex_bounds / compute_bounds

Run with: pytest tests/monotonicity/test_dofs.py -v
"""

import sys
sys.path.insert(0, '.')

import numpy as np
import pytest

from dgremap.dg.basis import ReferenceElement
from dgremap.errors import TopologyError
from dgremap.grid.mesh import CartesianMesh
from dgremap.monotonicity.dofs import DofInfo


# =============================================================================
# Fixtures
# =============================================================================

def make_dofs(nx, order, periodic=False):
    mesh = CartesianMesh(nx, periodic=periodic)
    return DofInfo(mesh, ReferenceElement(mesh.dim, order))


class StubMesh:
    """Mesh exposing only a neighbor list per element."""

    def __init__(self, table):
        self.table = table

    def neighbors(self, k):
        return np.array(self.table[k])


def check_involution(dofs):
    """Crossing a face twice returns to the starting dof."""
    nd = dofs.nd
    for k in range(dofs.num_elements):
        for s in range(dofs.num_bdrs):
            for j in range(dofs.num_dofs):
                n = dofs.nbr_dof[k, s, j]
                if n < 0:
                    continue
                e2, local = divmod(n, nd)
                s2, j2 = [(s2, j2) for s2 in range(dofs.num_bdrs)
                          for j2 in range(dofs.num_dofs)
                          if dofs.bdr_dofs[j2, s2] == local
                          and dofs.mesh.face_of[e2, s2] == dofs.mesh.face_of[k, s]][0]
                assert dofs.nbr_dof[e2, s2, j2] == k*nd + dofs.bdr_dofs[j, s]


# =============================================================================
# Neighbor Dof Tests
# =============================================================================

class TestNeighborDofs:
    """Tests for nbr_dof."""

    def test_sizes(self):
        """Table sizes of a quadratic quad space."""
        dofs = make_dofs([3, 2], 2)
        assert dofs.num_dofs == 3
        assert dofs.num_bdrs == 4
        assert dofs.num_subcells == 4
        assert dofs.num_dofs_subcell == 4
        assert dofs.nbr_dof.shape == (6, 4, 3)

    def test_segment(self):
        """End dofs of neighboring segments coincide."""
        dofs = make_dofs(3, 2)
        assert dofs.nbr_dof[0, 0, 0] == -1
        assert dofs.nbr_dof[0, 1, 0] == 3
        assert dofs.nbr_dof[1, 0, 0] == 2
        assert dofs.nbr_dof[2, 1, 0] == -1

    def test_periodic_segment(self):
        """Periodic ends wrap to the last dof of the last element."""
        dofs = make_dofs(2, 1, periodic=True)
        assert dofs.nbr_dof[0, 0, 0] == 3
        assert dofs.nbr_dof[1, 1, 0] == 0

    def test_quad_edges_reversed(self):
        """Shared quad edges are traversed in opposite directions."""
        dofs = make_dofs([3, 3], 2, periodic=True)
        nd = dofs.nd
        for k in range(dofs.num_elements):
            for s in range(4):
                nbr = dofs.mesh.neighbors(k)[s]
                ind = dofs.mesh.face_slot(nbr, dofs.mesh.face_of[k, s])
                expected = nbr*nd + dofs.bdr_dofs[::-1, ind]
                assert np.array_equal(dofs.nbr_dof[k, s], expected)

    def test_quad_neighbor_dofs_coincide(self):
        """Neighbor dofs sit at the same physical point."""
        mesh = CartesianMesh([2, 2])
        ref = ReferenceElement(2, 3)
        dofs = DofInfo(mesh, ref)
        x, _ = mesh.transformation(ref.nodes())
        x = x.reshape(-1, 2)
        for k in range(4):
            for s in range(4):
                for j in range(dofs.num_dofs):
                    n = dofs.nbr_dof[k, s, j]
                    if n >= 0:
                        own = k*dofs.nd + dofs.bdr_dofs[j, s]
                        assert np.allclose(x[own], x[n])

    def test_involution_2d(self):
        dofs = make_dofs([3, 2], 3, periodic=(True, False))
        check_involution(dofs)

    def test_involution_3d(self):
        dofs = make_dofs([2, 2, 2], 2, periodic=True)
        check_involution(dofs)


# =============================================================================
# Bounds Map Tests
# =============================================================================

class TestBoundsMap:
    """Tests for map_for_bounds and get_common_elem."""

    def test_common_elem_missing_neighbor(self):
        """A missing face neighbor gives no diagonal neighbor."""
        dofs = make_dofs([3, 3], 1)
        assert dofs.get_common_elem(0, -1, 1) == -1
        assert dofs.get_common_elem(0, 1, -1) == -1

    def test_common_elem_diagonal(self):
        """Bottom and left neighbors of the center share the corner element."""
        dofs = make_dofs([3, 3], 1)
        assert dofs.get_common_elem(4, 1, 3) == 0
        assert dofs.get_common_elem(4, 5, 7) == 8

    def test_common_elem_ambiguous(self):
        """More than one candidate raises TopologyError."""
        dofs = make_dofs([3, 3], 1)
        dofs.mesh = StubMesh({1: [0, 5, 6], 2: [5, 6, 7]})
        with pytest.raises(TopologyError):
            dofs.get_common_elem(0, 1, 2)

    def test_common_elem_duplicates_counted_once(self):
        """The same element reached twice is a single candidate."""
        dofs = make_dofs([3, 3], 1)
        dofs.mesh = StubMesh({1: [0, 5, 5], 2: [0, 5, -1]})
        assert dofs.get_common_elem(0, 1, 2) == 5

    def test_quad_corner_dofs(self):
        """Corner dofs of linear quads see all four touching elements."""
        dofs = make_dofs([3, 3], 1)
        nd = dofs.nd
        assert list(dofs.map_for_bounds[4*nd + 0]) == [0, 1, 3, 4]
        assert list(dofs.map_for_bounds[4*nd + 3]) == [4, 5, 7, 8]
        assert list(dofs.map_for_bounds[0*nd + 0]) == [0]
        assert list(dofs.map_for_bounds[0*nd + 3]) == [0, 1, 3, 4]

    def test_quad_edge_and_interior_dofs(self):
        """Edge dofs see the face neighbor, interior dofs only the element."""
        dofs = make_dofs([3, 3], 2)
        nd = dofs.nd
        assert list(dofs.map_for_bounds[4*nd + 1]) == [1, 4]
        assert list(dofs.map_for_bounds[4*nd + 5]) == [4, 5]
        assert list(dofs.map_for_bounds[4*nd + 4]) == [4]

    def test_hex_corner_dof(self):
        """Corner dofs of linear hexes see all eight touching elements."""
        dofs = make_dofs([3, 3, 3], 1)
        assert list(dofs.map_for_bounds[13*dofs.nd + 0]) == [0, 1, 3, 4, 9, 10, 12, 13]
        assert list(dofs.map_for_bounds[13*dofs.nd + 7]) == [13, 14, 16, 17, 22, 23, 25, 26]

    def test_hex_edge_dof(self):
        """An edge dof sees the four elements around the edge."""
        dofs = make_dofs([3, 3, 3], 2)
        # lexicographic (1, 0, 0): middle of the edge y = 0, z = 0
        assert list(dofs.map_for_bounds[13*dofs.nd + 1]) == [1, 4, 10, 13]

    def test_periodic_hex_corners(self):
        """Two periodic elements per axis still resolve every corner."""
        dofs = make_dofs([2, 2, 2], 1, periodic=True)
        assert all(len(elems) == 8 for elems in dofs.map_for_bounds)

    def test_padded_table(self):
        """bounds_table/bounds_mask mirror map_for_bounds."""
        dofs = make_dofs([3, 3], 2)
        for i, elems in enumerate(dofs.map_for_bounds):
            assert list(dofs.bounds_table[i, dofs.bounds_mask[i]]) == list(elems)


# =============================================================================
# Subcell Tests
# =============================================================================

class TestSubcells:
    """Tests for sub2ind."""

    def test_segment(self):
        dofs = make_dofs(2, 3)
        assert np.array_equal(dofs.sub2ind, [[0, 1], [1, 2], [2, 3]])

    def test_quad(self):
        dofs = make_dofs([2, 2], 2)
        assert np.array_equal(dofs.sub2ind, [[0, 1, 3, 4], [1, 2, 4, 5],
                                             [3, 4, 6, 7], [4, 5, 7, 8]])

    def test_hex(self):
        dofs = make_dofs([1, 1, 1], 2)
        assert dofs.sub2ind.shape == (8, 8)
        assert list(dofs.sub2ind[0]) == [0, 1, 3, 4, 9, 10, 12, 13]
        assert list(dofs.sub2ind[7]) == [13, 14, 16, 17, 22, 23, 25, 26]


# =============================================================================
# Bounds Tests
# =============================================================================

class TestBounds:
    """Tests for element ranges and per-dof bounds."""

    def test_segment_bounds(self):
        """Face dofs take the range of the neighbor into account."""
        dofs = make_dofs(3, 1)
        x = np.arange(6, dtype=float)
        xe_min, xe_max = dofs.compute_element_bounds(x)
        assert np.allclose(xe_min, [0, 2, 4])
        assert np.allclose(xe_max, [1, 3, 5])

        dofs.compute_vertex_bounds(x, 2)
        assert dofs.xi_min[2] == 0.0 and dofs.xi_max[2] == 3.0
        dofs.compute_vertex_bounds(x, 5)
        assert dofs.xi_min[5] == 4.0 and dofs.xi_max[5] == 5.0

    def test_vectorized_matches_loop(self):
        """compute_bounds equals compute_vertex_bounds dof by dof."""
        dofs = make_dofs([3, 2], 2, periodic=(True, False))
        x = np.random.default_rng(7).random(dofs.num_elements * dofs.nd)
        dofs.compute_element_bounds(x)
        lo, hi = (b.copy() for b in dofs.compute_bounds())
        for i in range(len(x)):
            dofs.compute_vertex_bounds(x, i)
        assert np.allclose(lo, dofs.xi_min)
        assert np.allclose(hi, dofs.xi_max)

    def test_bounds_contain_values(self):
        """Every dof value lies within its own bounds."""
        dofs = make_dofs([2, 2, 2], 1)
        x = np.random.default_rng(3).random(dofs.num_elements * dofs.nd)
        dofs.compute_element_bounds(x)
        lo, hi = dofs.compute_bounds()
        assert np.all(lo <= x) and np.all(x <= hi)
