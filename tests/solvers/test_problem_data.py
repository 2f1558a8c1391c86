"""Tests for dgremap/solvers/utils.py

Tests cover the problem data and metrics:
    - exec_mode_for / map_to_reference
    - velocity_function: translation, rotation, Taylor-Green
    - u0_function: 1D hump, solid body rotation shapes, unsupported cases
    - compute_lp_error / compute_mass

Run with: pytest tests/solvers/test_problem_data.py -v
"""

import sys
sys.path.insert(0, '.')

import numpy as np
import pytest

from dgremap.dg.basis import ReferenceElement
from dgremap.dg.coefficients import FunctionCoefficient
from dgremap.errors import ConfigurationError
from dgremap.grid.mesh import CartesianMesh
from dgremap.monotonicity.dofs import DofInfo
from dgremap.monotonicity.modes import LowOrderMethod, MonotonicityMode
from dgremap.solvers.discretization import Discretization
from dgremap.solvers.utils import (
    compute_lp_error,
    compute_mass,
    exec_mode_for,
    inflow_function,
    map_to_reference,
    u0_function,
    velocity_function,
)


# =============================================================================
# Fixtures
# =============================================================================

UNIT_2D = dict(bb_min=[-1.0, -1.0], bb_max=[1.0, 1.0])


# =============================================================================
# Mode and Mapping Tests
# =============================================================================

class TestModes:
    """Tests for exec_mode_for and map_to_reference."""

    def test_exec_mode(self):
        assert exec_mode_for(4) == 0
        assert exec_mode_for(14) == 1
        with pytest.raises(ConfigurationError):
            exec_mode_for(25)

    def test_map_to_reference(self):
        X = map_to_reference(np.array([[0.0, 2.0], [1.0, 4.0]]), [0.0, 2.0], [1.0, 4.0])
        assert np.allclose(X, [[-1.0, -1.0], [1.0, 1.0]])


# =============================================================================
# Velocity Tests
# =============================================================================

class TestVelocity:
    """Tests for velocity_function."""

    def test_translation_unit_speed(self):
        for dim in (1, 2, 3):
            x = np.zeros((4, dim))
            v = velocity_function(x, 0, np.zeros(dim), np.ones(dim))
            assert np.allclose(np.linalg.norm(v, axis=1), 1.0)

    def test_rotation(self):
        v = velocity_function(np.array([[1.0, 0.0], [0.0, 1.0]]), 4, **UNIT_2D)
        assert np.allclose(v, [[0.0, np.pi/2], [-np.pi/2, 0.0]])

    def test_rotation_1d_is_translation(self):
        v = velocity_function(np.array([[0.3]]), 1, [0.0], [1.0])
        assert np.allclose(v, 1.0)

    def test_twisting_vanishes_on_boundary(self):
        x = np.array([[1.0, 0.3], [-0.2, -1.0]])
        assert np.allclose(velocity_function(x, 3, **UNIT_2D), 0.0)

    def test_taylor_green_no_normal_flow(self):
        """The vortex is tangential on the walls of the unit square."""
        x = np.array([[0.0, 0.3], [1.0, 0.7], [0.4, 0.0], [0.6, 1.0]])
        v = velocity_function(x, 14, [0.0, 0.0], [1.0, 1.0])
        assert np.allclose(v[:2, 0], 0.0)
        assert np.allclose(v[2:, 1], 0.0)

    def test_taylor_green_1d_rejected(self):
        with pytest.raises(ConfigurationError):
            velocity_function(np.array([[0.5]]), 14, [0.0], [1.0])

    def test_unknown_case(self):
        with pytest.raises(ConfigurationError):
            velocity_function(np.zeros((1, 2)), 7, **UNIT_2D)


# =============================================================================
# Initial Condition Tests
# =============================================================================

class TestInitialCondition:
    """Tests for u0_function."""

    def test_hump_1d(self):
        u = u0_function(np.array([[0.75], [0.0]]), 0, [0.0], [1.0])
        assert np.isclose(u[0], 1.0)
        assert u[1] < 1e-10

    def test_box_2d_range(self):
        x = np.random.default_rng(0).random((50, 2))
        u = u0_function(x, 0, [0.0, 0.0], [1.0, 1.0])
        assert np.all(u >= 0.0) and np.all(u <= 1.0)

    def test_solid_body_shapes(self):
        """Slotted cylinder, cone tip and hump top of problem 4."""
        x = np.array([[0.1, 0.5], [0.0, 0.5], [0.0, -0.5], [-0.5, 0.0], [0.9, 0.9]])
        u = u0_function(x, 4, **UNIT_2D)
        assert np.allclose(u, [1.0, 0.0, 1.0, 0.5, 0.0])

    def test_sines_range(self):
        x = np.random.default_rng(1).uniform(-1.0, 1.0, (50, 2))
        u = u0_function(x, 3, **UNIT_2D)
        assert np.all(u >= 0.0) and np.all(u <= 1.0)

    def test_cross_and_rings_3d(self):
        x = np.random.default_rng(2).uniform(-1.0, 1.0, (20, 3))
        u = u0_function(x, 5, -np.ones(3), np.ones(3))
        assert u.shape == (20,)
        assert np.all(np.isfinite(u))

    def test_2d_only_cases_rejected_in_1d(self):
        for problem in (2, 3, 4, 5):
            with pytest.raises(ConfigurationError):
                u0_function(np.array([[0.5]]), problem, [0.0], [1.0])

    def test_inflow_is_zero(self):
        assert np.allclose(inflow_function(np.ones((5, 2))), 0.0)


# =============================================================================
# Metric Tests
# =============================================================================

class TestMetrics:
    """Tests for compute_lp_error and compute_mass."""

    @staticmethod
    def make_disc():
        mesh = CartesianMesh(4)
        ref = ReferenceElement(1, 1)
        return Discretization(
            mesh, ref, DofInfo(mesh, ref), LowOrderMethod(MonotonicityMode.NONE),
            FunctionCoefficient(lambda x: np.ones_like(x)), inflow_function,
        )

    def test_linear_exact(self):
        disc = self.make_disc()
        f = lambda x: 2.0 * x[:, 0] + 1.0
        l1, linf = compute_lp_error(disc, disc.project_nodal(f), f)
        assert l1 < 1e-14 and linf < 1e-14

    def test_constant_offset(self):
        disc = self.make_disc()
        f = lambda x: np.zeros(len(x))
        l1, linf = compute_lp_error(disc, np.full(8, 0.5), f)
        assert np.isclose(l1, 0.5)
        assert np.isclose(linf, 0.5)

    def test_mass(self):
        disc = self.make_disc()
        assert np.isclose(compute_mass(disc.lumped_mass, np.full(8, 2.0)), 2.0)
