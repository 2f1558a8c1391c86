"""
Right-hand side evaluator of the monotone DG transport/remap scheme.

FEEvolution computes du/dt for the explicit time integrators. Depending on
the monotonicity treatment it returns

    - the high-order Galerkin rate        yH = M^{-1} (K u + b + face terms)
    - a low-order bound-preserving rate   yL (discrete upwinding or residual
                                          distribution, divided by M_L)
    - the flux-corrected blend            y = yL + f / M_L

where the antidiffusive fluxes f are clipped so that a forward Euler step
u + dt*y stays within the local bounds of every dof, then rescaled element by
element so that they sum to zero (mass conservation).

In remap mode the mesh moves with a prescribed vertex velocity; before each
evaluation the vertices are placed at start + t*velocity and every
geometry-dependent operator is rebuilt.

Example:
    >>> evolution = FEEvolution(disc, asmbl, lom, dofs)
    >>> evolution.set_dt(1e-3)
    >>> dudt = evolution.mult(u)
"""

import numpy as np

from ..dg.matrices import build_symmetric_offset_map, compute_discrete_upwinding_matrix
from ..monotonicity.modes import LowOrderKind, Scheme

EPS = 1.0e-15
# Subcell residual distribution parameter
GAMMA = 10.0


class FEEvolution:
    """
    Blended low-order / high-order evolution operator.

    Attributes:
        disc (Discretization): M, lumped mass, K, b (and Kp).
        asmbl (Assembly): Fills bdr_int and subcell_weights.
        lom (LowOrderMethod): Resolved monotonicity treatment.
        dofs (DofInfo): Dof tables and the bounds arrays.
        bdr_int (ndarray): Face stencils, (ne, numBdrs, numDofs**2).
        subcell_weights (ndarray): Subcell weights, (ne, numSubcells, 2**dim).
        D (csr_matrix): Discrete upwinding operator, or None.
        smap (ndarray): Transposed-entry offsets of the upwinded matrix.
        dt (float): Time step used by the FCT blend.
        t (float): Current evaluation time.
        neumann_max_iter (int): Iteration cap of neumann_solve.
        neumann_abs_tol (float): Residual tolerance of neumann_solve.
    """

    def __init__(self, disc, asmbl, lom, dofs, mesh_velocity=None):
        """
        Set up the operator and the geometry-dependent tensors.

        Args:
            disc: Discretization.
            asmbl: Assembly.
            lom: LowOrderMethod.
            dofs: DofInfo.
            mesh_velocity: Vertex velocities (nv, dim). Required in remap
                mode, where the mesh is moved with it.

        Raises:
            ValueError: Remap mode without a mesh velocity.
        """
        self.disc = disc
        self.asmbl = asmbl
        self.lom = lom
        self.dofs = dofs
        self.remap = disc.remap

        self.dt = None
        self.t = 0.0
        self.neumann_max_iter = 20
        self.neumann_abs_tol = 1.0e-4

        self.mesh_velocity = None
        self.start_pos = None
        if self.remap:
            if mesh_velocity is None:
                raise ValueError("Remap mode needs the vertex mesh velocity")
            self.mesh_velocity = np.asarray(mesh_velocity, dtype=float)
            self.start_pos = disc.mesh.nodes.copy()

        self.bdr_int = asmbl.new_flux_terms()
        self.subcell_weights = asmbl.new_subcell_weights()
        self.asmbl.refresh(self.bdr_int, self.subcell_weights)

        self.smap = None
        self.D = None
        if lom.low_order_kind == LowOrderKind.UPWIND:
            self.smap = build_symmetric_offset_map(self._upwinded_matrix())
            self.D = compute_discrete_upwinding_matrix(self._upwinded_matrix(), self.smap)

    # =========================================================================
    # Time Stepper Interface
    # =========================================================================

    def set_dt(self, dt):
        self.dt = dt

    def set_time(self, t):
        self.t = t

    def set_remap_start_pos(self, pos):
        """Vertex positions at the start of the current step."""
        self.start_pos = np.array(pos, dtype=float)

    def get_remap_start_pos(self):
        return self.start_pos

    def mult(self, x):
        """
        Evaluate du/dt at state x.

        Args:
            x: Dof values, length ne * nd.

        Returns:
            Rate y of the same length.

        Raises:
            ValueError: FCT blend requested before set_dt.
        """
        x = np.asarray(x, dtype=float)
        if self.remap:
            self.update_geometry()

        scheme = self.lom.scheme
        if scheme == Scheme.HIGH_ORDER_ONLY:
            return self.compute_high_order_solution(x)
        if scheme == Scheme.LOW_ORDER_ONLY:
            return self.compute_low_order_solution(x)

        # The low-order pass refreshes the element ranges used by FCT
        yL = self.compute_low_order_solution(x)
        yH = self.compute_high_order_solution(x)
        return self.compute_fct_solution(x, yH, yL)

    def update_geometry(self):
        """Move the mesh to start + t*velocity and rebuild the operators."""
        self.disc.mesh.set_nodes(self.start_pos + self.t * self.mesh_velocity)
        self.disc.assemble()
        self.asmbl.refresh(self.bdr_int, self.subcell_weights)
        if self.smap is not None:
            self.D = compute_discrete_upwinding_matrix(self._upwinded_matrix(), self.smap)

    def _upwinded_matrix(self):
        return self.disc.Kp if self.lom.preconditioned else self.disc.K

    # =========================================================================
    # Building Blocks
    # =========================================================================

    def neumann_solve(self, f):
        """
        Approximate M^{-1} f by lumped-mass preconditioned Richardson.

            x <- x - M_L^{-1} (M x - f),    x_0 = 0

        Stops once ||M x - f||_2 <= neumann_abs_tol or after
        neumann_max_iter iterations, returning the current iterate either way.
        """
        M = self.disc.M
        lumped = self.disc.lumped_mass
        x = np.zeros_like(f)

        for _ in range(self.neumann_max_iter):
            y = M @ x - f
            if np.linalg.norm(y) <= self.neumann_abs_tol:
                break
            x -= y / lumped
        return x

    def linear_flux_lumping(self, slot, x, y, alpha):
        """
        Add the upwind face terms of one boundary slot to y (in place).

            y_i += Σ_j bdrInt_ij (xDiff_i + (xDiff_j - xDiff_i) α_i α_j)

        with xDiff_j = xNeighbor_j - x_j. The neighbor value is 0 on the
        exterior boundary, where the inflow data enters through b instead.
        alpha = 1 reproduces the Galerkin upwind face integral; alpha = 0
        lumps it onto the diagonal, which keeps the low-order schemes local.

        Args:
            slot: Boundary slot, applied to every element.
            x: State, length ne * nd.
            y: Accumulator, length ne * nd, modified in place.
            alpha: Scalar or per-local-dof weights (length nd).
        """
        d = self.dofs
        ne, nd, nD = d.num_elements, d.nd, d.num_dofs
        bdr = d.bdr_dofs[:, slot]

        nbr = d.nbr_dof[:, slot]
        x_nbr = np.where(nbr >= 0, x[np.maximum(nbr, 0)], 0.0)
        x_diff = x_nbr - x.reshape(ne, nd)[:, bdr]

        a = np.broadcast_to(np.asarray(alpha, dtype=float), (nd,))[bdr]
        aa = np.outer(a, a)
        B = self.bdr_int[:, slot].reshape(ne, nD, nD)
        terms = x_diff[:, :, None] + (x_diff[:, None, :] - x_diff[:, :, None]) * aa

        Y = y.reshape(ne, nd)
        Y[:, bdr] += np.sum(B * terms, axis=2)

    # =========================================================================
    # Updates
    # =========================================================================

    def compute_high_order_solution(self, x):
        """Galerkin rate M^{-1} (K x + b + upwind face terms)."""
        z = self.disc.K @ x + self.disc.b
        if not self.lom.faces_in_operator:
            for slot in range(self.dofs.num_bdrs):
                self.linear_flux_lumping(slot, x, z, 1.0)
        return self.neumann_solve(z)

    def compute_low_order_solution(self, x):
        """
        Bound-preserving low-order rate.

        Also refreshes the element ranges xe_min/xe_max from x.
        """
        if self.lom.low_order_kind == LowOrderKind.UPWIND:
            return self._discrete_upwinding(x)
        return self._residual_distribution(x)

    def _discrete_upwinding(self, x):
        y = self.D @ x + self.disc.b
        if self.lom.optimized:
            for slot in range(self.dofs.num_bdrs):
                self.linear_flux_lumping(slot, x, y, 0.0)
        self.dofs.compute_element_bounds(x)
        return y / self.disc.lumped_mass

    def _residual_distribution(self, x):
        d = self.dofs
        ne, nd = d.num_elements, d.nd

        y = self.disc.b.copy()
        z = self.disc.K @ x
        for slot in range(d.num_bdrs):
            self.linear_flux_lumping(slot, x, y, 0.0)

        X = x.reshape(ne, nd)
        Z = z.reshape(ne, nd)
        xe_min, xe_max = d.compute_element_bounds(x)
        x_sum = X.sum(axis=1)

        sum_weights_p = nd * xe_max - x_sum + EPS
        sum_weights_n = nd * xe_min - x_sum - EPS
        weight_p = (xe_max[:, None] - X) / sum_weights_p[:, None]
        weight_n = (xe_min[:, None] - X) / sum_weights_n[:, None]

        if self.lom.optimized:
            weight_p, weight_n = self._subcell_correction(X, Z, weight_p, weight_n)

        z_pos = np.where(Z > EPS, Z, 0.0).sum(axis=1)
        z_neg = np.where(Z < -EPS, Z, 0.0).sum(axis=1)

        Y = y.reshape(ne, nd)
        Y += weight_p * z_pos[:, None] + weight_n * z_neg[:, None]
        return y / self.disc.lumped_mass

    def _subcell_correction(self, X, Z, weight_p, weight_n):
        """Blend the element weights with the subcell fluctuation weights."""
        d = self.dofs
        rho_p = np.maximum(Z, 0.0).sum(axis=1)
        rho_n = np.minimum(Z, 0.0).sum(axis=1)

        XS = X[:, d.sub2ind]
        fluct = np.sum(self.subcell_weights * XS, axis=2)
        xs_max = XS.max(axis=2)
        xs_min = XS.min(axis=2)
        xs_sum = XS.sum(axis=2)

        sum_weights_sub_p = d.num_dofs_subcell * xs_max - xs_sum + EPS
        sum_weights_sub_n = d.num_dofs_subcell * xs_min - xs_sum - EPS
        fluct_p = np.maximum(fluct, 0.0)
        fluct_n = np.minimum(fluct, 0.0)
        sum_fluct_p = fluct_p.sum(axis=1)
        sum_fluct_n = fluct_n.sum(axis=1)

        contrib_p = fluct_p[:, :, None] * (xs_max[:, :, None] - XS) / sum_weights_sub_p[:, :, None]
        contrib_n = fluct_n[:, :, None] * (xs_min[:, :, None] - XS) / sum_weights_sub_n[:, :, None]
        nodal_p = np.zeros_like(X)
        nodal_n = np.zeros_like(X)
        # Corners are shared between subcells
        for m in range(d.num_subcells):
            nodal_p[:, d.sub2ind[m]] += contrib_p[:, m]
            nodal_n[:, d.sub2ind[m]] += contrib_n[:, m]

        aux = GAMMA / (rho_p + EPS)
        weight_p = weight_p * (1.0 - np.minimum(aux * sum_fluct_p, 1.0))[:, None]
        weight_p = weight_p + np.minimum(aux, 1.0 / (sum_fluct_p + EPS))[:, None] * nodal_p

        aux = GAMMA / (rho_n - EPS)
        weight_n = weight_n * (1.0 - np.minimum(aux * sum_fluct_n, 1.0))[:, None]
        weight_n = weight_n + np.maximum(aux, 1.0 / (sum_fluct_n - EPS))[:, None] * nodal_n

        return weight_p, weight_n

    def compute_fct_solution(self, x, yH, yL):
        """
        Flux-corrected blend of the high- and low-order rates.

        Requires the element ranges of x (refreshed by the low-order pass)
        and a time step set with set_dt.

        Returns:
            y = yL + f / M_L, where u + dt*y lies within [xi_min, xi_max]
            whenever u + dt*yL does.
        """
        if self.dt is None:
            raise ValueError("Time step must be set before the FCT blend")
        d = self.dofs
        ne, nd = d.num_elements, d.nd
        dt = self.dt
        lumped = self.disc.lumped_mass

        xi_min, xi_max = d.compute_bounds()
        u_clipped = np.minimum(xi_max, np.maximum(x + dt * yH, xi_min))
        f_clipped = lumped / dt * (u_clipped - (x + dt * yL))

        F = f_clipped.reshape(ne, nd)
        sum_pos = np.maximum(F, 0.0).sum(axis=1)
        sum_neg = np.minimum(F, 0.0).sum(axis=1)
        net = sum_pos + sum_neg

        # Zalesak-type rescaling of the dominant sign
        scale_pos = np.where(net > EPS, -sum_neg / np.where(sum_pos > 0.0, sum_pos, 1.0), 1.0)
        scale_neg = np.where(net < -EPS, -sum_pos / np.where(sum_neg < 0.0, sum_neg, -1.0), 1.0)
        F = np.where(F > EPS, F * scale_pos[:, None], F)
        F = np.where(F < -EPS, F * scale_neg[:, None], F)

        return yL + F.ravel() / lumped
