"""Tests for dgremap/monotonicity/assembly.py

Tests cover:
    - new_flux_terms / new_subcell_weights: tensor shapes
    - refresh: only the tensors the low-order method needs are filled
    - compute_flux_terms / compute_subcell_weights: transport and remap signs

Run with: pytest tests/monotonicity/test_assembly.py -v
"""

import sys
sys.path.insert(0, '.')

import numpy as np
import pytest

from dgremap.dg.basis import ReferenceElement
from dgremap.dg.coefficients import FunctionCoefficient
from dgremap.grid.mesh import CartesianMesh
from dgremap.monotonicity.assembly import Assembly
from dgremap.monotonicity.dofs import DofInfo
from dgremap.monotonicity.modes import LowOrderMethod, MonotonicityMode


# =============================================================================
# Fixtures
# =============================================================================

def make_assembly(nx, order, mode, optimized=False, velocity=None, remap=False):
    mesh = CartesianMesh(nx)
    ref = ReferenceElement(mesh.dim, order)
    dofs = DofInfo(mesh, ref)
    if velocity is None:
        velocity = FunctionCoefficient(lambda x: np.ones_like(x))
    lom = LowOrderMethod(MonotonicityMode(mode), optimized)
    return Assembly(dofs, mesh, ref, lom, velocity, remap=remap)


def swirl(x):
    return np.column_stack([np.sin(np.pi * x[:, 1]), x[:, 0]**2])


# =============================================================================
# Shape Tests
# =============================================================================

class TestShapes:
    """Tests for the tensor allocation."""

    def test_quad_shapes(self):
        asmbl = make_assembly([3, 2], 2, 4, True)
        assert asmbl.new_flux_terms().shape == (6, 4, 9)
        assert asmbl.new_subcell_weights().shape == (6, 4, 4)

    def test_defaults(self):
        asmbl = make_assembly(4, 3, 0)
        assert asmbl.face_nq == 5
        assert asmbl.alpha == -1.0
        assert make_assembly(4, 3, 0, remap=True).alpha == 1.0


# =============================================================================
# Refresh Tests
# =============================================================================

class TestRefresh:
    """Tests for Assembly.refresh."""

    def test_segment_transport(self):
        """Unit velocity: stencil on the left slot only."""
        asmbl = make_assembly(4, 1, 0)
        bdr_int = asmbl.new_flux_terms()
        sub = asmbl.new_subcell_weights()
        asmbl.refresh(bdr_int, sub)
        assert np.allclose(bdr_int[:, 0], 1.0)
        assert np.allclose(bdr_int[:, 1], 0.0)

    def test_segment_remap(self):
        """Remap stencil on the right slot only."""
        asmbl = make_assembly(4, 1, 0, remap=True)
        bdr_int = asmbl.new_flux_terms()
        asmbl.refresh(bdr_int, asmbl.new_subcell_weights())
        assert np.allclose(bdr_int[:, 0], 0.0)
        assert np.allclose(bdr_int[:, 1], 1.0)

    def test_basic_upwinding_skips_faces(self):
        """Faces live in K for basic upwinding; bdr_int stays zero."""
        asmbl = make_assembly([2, 2], 2, 1, False)
        bdr_int = asmbl.new_flux_terms()
        asmbl.refresh(bdr_int, asmbl.new_subcell_weights())
        assert not bdr_int.any()

    def test_subcells_only_when_needed(self):
        """Subcell weights are filled for optimized residual distribution."""
        v = FunctionCoefficient(swirl)
        basic = make_assembly([2, 2], 2, 3, False, velocity=v)
        sub = basic.new_subcell_weights()
        basic.refresh(basic.new_flux_terms(), sub)
        assert not sub.any()

        optimized = make_assembly([2, 2], 2, 3, True, velocity=v)
        sub = optimized.new_subcell_weights()
        optimized.refresh(optimized.new_flux_terms(), sub)
        assert sub.any()
        assert np.allclose(sub.sum(axis=2), 0.0)

    def test_remap_flips_subcell_sign(self):
        """Remap weights are the negated transport weights."""
        v = FunctionCoefficient(swirl)
        transport = make_assembly([2, 2], 2, 4, True, velocity=v)
        remap = make_assembly([2, 2], 2, 4, True, velocity=v, remap=True)
        a = transport.new_subcell_weights()
        b = remap.new_subcell_weights()
        for m in range(transport.dofs.num_subcells):
            transport.compute_subcell_weights(m, a)
            remap.compute_subcell_weights(m, b)
        assert np.allclose(a, -b)

    def test_refresh_follows_moved_mesh(self):
        """Refreshing after moving the nodes picks up the new geometry."""
        v = FunctionCoefficient(lambda x: np.tile([1.0, 0.0], (len(x), 1)))
        asmbl = make_assembly([2, 2], 1, 0, velocity=v)
        before = asmbl.new_flux_terms()
        asmbl.refresh(before, asmbl.new_subcell_weights())

        asmbl.mesh.set_nodes(asmbl.mesh.vertices * [1.0, 3.0])
        after = asmbl.new_flux_terms()
        asmbl.refresh(after, asmbl.new_subcell_weights())
        assert np.allclose(after, 3.0 * before)
