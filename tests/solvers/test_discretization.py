"""Tests for dgremap/solvers/discretization.py

Tests cover:
    - assemble: mass, lumped mass, convection with and without face coupling
    - project_nodal / evaluate: nodal interpolation and quadrature evaluation

Run with: pytest tests/solvers/test_discretization.py -v
"""

import sys
sys.path.insert(0, '.')

import numpy as np
import pytest

from dgremap.dg.basis import ReferenceElement
from dgremap.dg.coefficients import FunctionCoefficient
from dgremap.dg.matrices import build_symmetric_offset_map, compute_discrete_upwinding_matrix
from dgremap.grid.mesh import CartesianMesh
from dgremap.monotonicity.dofs import DofInfo
from dgremap.monotonicity.modes import LowOrderMethod, MonotonicityMode
from dgremap.solvers.discretization import Discretization


# =============================================================================
# Fixtures
# =============================================================================

def unit_velocity(x):
    v = np.zeros_like(x)
    v[:, 0] = 1.0
    return v


def no_inflow(x):
    return np.zeros(len(x))


def make_disc(nx, order, mode, optimized=False, periodic=True, velocity=unit_velocity):
    mesh = CartesianMesh(nx, periodic=periodic)
    ref = ReferenceElement(mesh.dim, order)
    dofs = DofInfo(mesh, ref)
    lom = LowOrderMethod(MonotonicityMode(mode), optimized)
    return Discretization(mesh, ref, dofs, lom, FunctionCoefficient(velocity), no_inflow)


# =============================================================================
# Operator Tests
# =============================================================================

class TestAssemble:
    """Tests for the assembled operators."""

    def test_basic_upwinding_matrix(self):
        """Two periodic linear elements: K with faces, then pure upwinding."""
        disc = make_disc(2, 1, 1)
        expected_K = np.array([[-0.5, -0.5, 0.0, 1.0],
                               [0.5, -0.5, 0.0, 0.0],
                               [0.0, 1.0, -0.5, -0.5],
                               [0.0, 0.0, 0.5, -0.5]])
        assert np.allclose(disc.K.toarray(), expected_K)

        D = compute_discrete_upwinding_matrix(disc.K, build_symmetric_offset_map(disc.K))
        expected_D = np.array([[-1.0, 0.0, 0.0, 1.0],
                               [1.0, -1.0, 0.0, 0.0],
                               [0.0, 1.0, -1.0, 0.0],
                               [0.0, 0.0, 1.0, -1.0]])
        assert np.allclose(D.toarray(), expected_D)

    def test_face_pattern_symmetric(self):
        """Face coupling keeps a structurally symmetric pattern in 2D."""
        disc = make_disc([3, 3], 2, 2)
        assert disc.K.nnz > disc.M.nnz
        smap = build_symmetric_offset_map(disc.K)
        assert len(smap) == disc.K.nnz

    def test_faces_excluded_otherwise(self):
        """Without basic upwinding K is block diagonal."""
        disc = make_disc([3, 3], 2, 4, True)
        assert disc.K.nnz == disc.M.nnz

    def test_zero_row_sums(self):
        """Rows of K sum to zero with or without face coupling."""
        for mode, optimized in [(0, False), (1, False), (2, True)]:
            disc = make_disc([3, 2], 2, mode, optimized)
            assert np.allclose(disc.K @ np.ones(disc.ndofs), 0.0)

    def test_preconditioned_only_when_needed(self):
        assert make_disc(4, 2, 1, False).Kp is None
        assert make_disc(4, 2, 4, True).Kp is None
        disc = make_disc(4, 2, 2, True)
        assert disc.Kp is not None
        assert np.allclose(disc.Kp @ np.ones(disc.ndofs), 0.0)

    def test_mass(self):
        """Lumped mass equals the row sums of M and the domain size."""
        disc = make_disc([2, 2], 3, 0)
        assert np.allclose(disc.M @ np.ones(disc.ndofs), disc.lumped_mass)
        assert np.isclose(disc.lumped_mass.sum(), 1.0)

    def test_periodic_without_load(self):
        disc = make_disc(4, 2, 0)
        assert np.allclose(disc.b, 0.0)

    def test_inflow_load(self):
        """Inflow at the left end of a non-periodic segment."""
        mesh = CartesianMesh(3)
        ref = ReferenceElement(1, 2)
        dofs = DofInfo(mesh, ref)
        lom = LowOrderMethod(MonotonicityMode.NONE)
        disc = Discretization(mesh, ref, dofs, lom, FunctionCoefficient(unit_velocity),
                              lambda x: 0.5 * np.ones(len(x)))
        assert np.isclose(disc.b[0], 0.5)
        assert np.allclose(disc.b[1:], 0.0)

    def test_reassemble_after_move(self):
        """assemble picks up moved nodes."""
        disc = make_disc(4, 1, 0)
        disc.mesh.set_nodes(disc.mesh.vertices * 2.0)
        disc.assemble()
        assert np.isclose(disc.lumped_mass.sum(), 2.0)


# =============================================================================
# Projection Tests
# =============================================================================

class TestProjection:
    """Tests for project_nodal and evaluate."""

    def test_linear_reproduced(self):
        """Bernstein interpolation reproduces linear functions."""
        disc = make_disc([3, 2], 2, 0)
        f = lambda x: 2.0 * x[:, 0] - x[:, 1] + 0.5
        u = disc.project_nodal(f)
        x, values, weights = disc.evaluate(u)
        assert np.allclose(values, f(x.reshape(-1, 2)).reshape(values.shape))
        assert np.isclose(weights.sum(), 1.0)

    def test_constant(self):
        disc = make_disc(4, 3, 0)
        u = disc.project_nodal(lambda x: 3.0 * np.ones(len(x)))
        assert np.allclose(u, 3.0)
