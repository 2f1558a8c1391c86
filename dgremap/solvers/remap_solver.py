"""
Monotone high-order DG solver for scalar transport and remap.

This module implements the driver that wires the pieces together:

    CartesianMesh -> ReferenceElement -> DofInfo -> Discretization
                  -> Assembly -> FEEvolution -> Runge-Kutta integrator

and advances the solution in time with one of the monotonicity treatments
(none, discrete upwinding, residual distribution, each optionally blended
with the high-order scheme by flux-corrected transport).

The equations solved are

    du/dt + v · grad(u) = 0                 (transport, problem < 10)
    M(t) du/dt = K(t) u, mesh moving with w  (remap, 10 <= problem < 20)

Example:
    >>> solver = RemapSolver(
    ...     nx=[16, 16],
    ...     bounds=[(-1.0, 1.0), (-1.0, 1.0)],
    ...     order=2,
    ...     problem_num=4,
    ...     mono_type=4,
    ...     opt_scheme=True,
    ... )
    >>> times, solutions = solver.solve(t_final=4.0, vis_steps=100)
    >>> solver.summary()['mass_loss']

References:
    Anderson, R. et al. (2017). Monotonicity in high-order curvilinear
    finite element arbitrary Lagrangian-Eulerian remap.
"""

from functools import partial

import numpy as np

from ..dg.basis import ReferenceElement
from ..dg.coefficients import FunctionCoefficient, VertexVelocityCoefficient
from ..errors import ConfigurationError
from ..grid.mesh import CartesianMesh
from ..monotonicity.assembly import Assembly
from ..monotonicity.dofs import DofInfo
from ..monotonicity.modes import validate_configuration
from .discretization import Discretization
from .evolution import FEEvolution
from .ode import create_ode_solver
from .utils import (
    compute_lp_error,
    compute_mass,
    exec_mode_for,
    inflow_function,
    u0_function,
    velocity_function,
)


class RemapSolver:
    """
    Driver of the monotone DG transport/remap scheme.

    Attributes:
        order (int): Polynomial order.
        problem_num (int): Problem number (see solvers.utils).
        exec_mode (int): 0 transport, 1 remap.
        lom (LowOrderMethod): Resolved monotonicity treatment.
        dt (float): Time step size.
        time (float): Current simulation time.
        step_count (int): Number of steps taken.
        mesh (CartesianMesh): The mesh (moved in remap mode).
        ref (ReferenceElement): Reference element.
        dofs (DofInfo): Dof tables.
        disc (Discretization): Assembled operators.
        evolution (FEEvolution): Right-hand side evaluator.
        u (ndarray): Current solution dofs.
        mesh_velocity (ndarray): Vertex velocity (remap only).
        initial_mass (float): Lumped mass of the initial solution.
        verbose (bool): Whether to print diagnostic information.
    """

    def __init__(self, nx, bounds=None, periodic=True, order=3, problem_num=4,
                 mono_type=4, opt_scheme=True, ode_solver_type=3, dt=0.0025,
                 basis_type='bernstein', verbose=False):
        """
        Initialize mesh, operators and the initial condition.

        Args:
            nx: Elements per axis (int for 1D, list for 2D/3D).
            bounds: (lo, hi) per axis. Defaults to the unit box.
            periodic: Periodicity for all axes or per axis.
            order: Polynomial order of the basis.
            problem_num: Problem number selecting mode, velocity and
                initial condition.
            mono_type: Monotonicity treatment code (0-4).
            opt_scheme: Use the optimized low-order variants.
            ode_solver_type: Integrator code (1-5).
            dt: Time step size.
            basis_type: 'bernstein' or 'lagrange'.
            verbose: If True, print diagnostic information.

        Raises:
            ConfigurationError: Invalid combination of options.
        """
        if dt <= 0:
            raise ConfigurationError(f"Time step must be positive, got {dt}")

        self.order = order
        self.problem_num = problem_num
        self.basis_type = basis_type
        self.verbose = verbose
        self.dt = dt
        self.time = 0.0
        self.step_count = 0

        self.lom = validate_configuration(mono_type, opt_scheme, order, basis_type)
        self.exec_mode = exec_mode_for(problem_num)
        self.remap = self.exec_mode == 1
        self.ode_solver = create_ode_solver(ode_solver_type)

        self._initialize_mesh(nx, bounds, periodic)
        self._initialize_problem()
        self._initialize_operators()
        self.u = self._initialize_solution()
        self.initial_mass = self.mass()

        self.ode_solver.init(self.evolution)

    # =========================================================================
    # Initialization Methods
    # =========================================================================

    def _initialize_mesh(self, nx, bounds, periodic):
        self.mesh = CartesianMesh(nx, bounds=bounds, periodic=periodic)
        self.ref = ReferenceElement(self.mesh.dim, self.order, self.basis_type)
        self.dofs = DofInfo(self.mesh, self.ref)
        self.ndofs = self.mesh.num_elements * self.ref.ndof

        if self.verbose:
            print(f"Number of unknowns: {self.ndofs}")

    def _initialize_problem(self):
        """
        Bind the problem data to the mesh bounding box.

        In remap mode the mesh velocity is the problem velocity at the
        vertices, held at zero on non-periodic boundaries so the domain
        does not change. Both copies of a periodic vertex take the velocity
        of the lower-side copy so periodic faces stay matched.
        """
        bb_min, bb_max = self.mesh.bounding_box()
        data = dict(problem_num=self.problem_num, bb_min=bb_min, bb_max=bb_max)
        self.velocity_func = partial(velocity_function, **data)
        self.u0_func = partial(u0_function, **data)
        self.inflow_func = partial(inflow_function, **data)

        if self.remap:
            v = self.velocity_func(self.mesh.vertices)
            v[self.mesh.boundary_vertex_mask()] = 0.0
            v = v[self.mesh.periodic_vertex_map()]
            self.mesh_velocity = v
            self.velocity = VertexVelocityCoefficient(v)
        else:
            # Evaluate once so an unknown velocity case fails at setup
            self.velocity_func(self.mesh.vertices)
            self.mesh_velocity = None
            self.velocity = FunctionCoefficient(self.velocity_func)

    def _initialize_operators(self):
        self.disc = Discretization(
            self.mesh, self.ref, self.dofs, self.lom, self.velocity,
            self.inflow_func, remap=self.remap,
        )
        self.asmbl = Assembly(
            self.dofs, self.mesh, self.ref, self.lom, self.velocity, remap=self.remap,
        )
        self.evolution = FEEvolution(
            self.disc, self.asmbl, self.lom, self.dofs,
            mesh_velocity=self.mesh_velocity,
        )
        self.evolution.set_dt(self.dt)

    def _initialize_solution(self):
        return self.disc.project_nodal(self.u0_func)

    # =========================================================================
    # Query Methods
    # =========================================================================

    def mass(self):
        """Lumped mass of the current solution at the current geometry."""
        if self.remap:
            self.disc.assemble()
        return compute_mass(self.disc.lumped_mass, self.u)

    def get_exact_solution(self):
        """Initial condition at the dof nodes of the current mesh."""
        return self.disc.project_nodal(self.u0_func)

    def compute_errors(self):
        """L1 and L-infinity distance of the solution to the initial condition."""
        return compute_lp_error(self.disc, self.u, self.u0_func)

    def verify_state(self):
        """
        Verify solver state is internally consistent.

        Raises:
            ValueError: If the solution has non-finite values.
        """
        if np.any(~np.isfinite(self.u)):
            raise ValueError("Invalid solution values detected")

    # =========================================================================
    # Time Stepping Methods
    # =========================================================================

    def step(self, dt=None):
        """
        Advance the solution by one time step.

        Args:
            dt: Time step size. If None, uses self.dt.
        """
        if dt is None:
            dt = self.dt

        self.evolution.set_dt(dt)
        if self.remap:
            self.evolution.set_remap_start_pos(self.mesh.vertices)

        self.u, self.time = self.ode_solver.step(self.u, self.time, dt)
        self.step_count += 1

        if self.remap:
            self.mesh.set_nodes(self.mesh.vertices + self.time * self.mesh_velocity)

    def solve(self, t_final, vis_steps=None):
        """
        Integrate solution to the final time.

        The last step is shortened to land on t_final.

        Args:
            t_final: Final simulation time.
            vis_steps: Store (and report) every vis_steps steps; the final
                state is always stored. None stores only the final state.

        Returns:
            Tuple of (times, solutions) snapshot lists, starting with the
            current state.
        """
        times = [self.time]
        solutions = [self.u.copy()]

        done = self.time >= t_final - 1e-8 * self.dt
        while not done:
            dt_real = min(self.dt, t_final - self.time)
            self.step(dt_real)

            done = self.time >= t_final - 1e-8 * self.dt
            if done or (vis_steps and self.step_count % vis_steps == 0):
                if self.verbose:
                    print(f"time step: {self.step_count}, time: {self.time:g}")
                times.append(self.time)
                solutions.append(self.u.copy())

        self.verify_state()
        return times, solutions

    def summary(self):
        """
        Final diagnostics.

        Returns:
            Dict with time, steps, initial_mass, final_mass, mass_loss,
            max_value and, for the solid body rotation (problem 4), the
            l1_error and linf_error against the initial condition.
        """
        final_mass = self.mass()
        result = {
            'time': self.time,
            'steps': self.step_count,
            'initial_mass': self.initial_mass,
            'final_mass': final_mass,
            'mass_loss': abs(self.initial_mass - final_mass),
            'max_value': float(np.max(self.u)),
        }
        if self.problem_num == 4:
            result['l1_error'], result['linf_error'] = self.compute_errors()

        if self.verbose:
            print(f"Initial mass: {self.initial_mass}")
            print(f"Final mass: {final_mass}")
            print(f"Max value: {result['max_value']}")
            print(f"Mass loss: {result['mass_loss']}")
            if 'l1_error' in result:
                print(f"L1-error: {result['l1_error']}, L-Inf-error: {result['linf_error']}")
        return result
