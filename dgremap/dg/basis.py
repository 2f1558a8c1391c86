"""Basis functions and quadrature for the tensor-product DG discretization.

This module provides Legendre polynomial evaluation, Legendre-Gauss-Lobatto
(LGL) quadrature, Lagrange and Bernstein basis functions in one dimension and
the tensor-product reference element built from them.

Key Functions:
    leg_poly: Evaluate Legendre polynomial and derivatives at a point.
    lgl_gen: Generate LGL nodes and weights on [-1, 1].
    quadrature_rule: LGL rule mapped to [0, 1].
    tensor_quadrature: Tensor-product LGL rule on [0, 1]^dim.
    Lagrange_basis: Lagrange basis functions on arbitrary nodes.
    bernstein_basis: Bernstein (positive) basis functions.
    ReferenceElement: Tensor-product element with boundary dof tables.

Note:
    leg_poly and lgl_gen operate on [-1, 1]; everything else uses the
    reference interval [0, 1], matching the element maps of the mesh.
"""
import numpy as np
from scipy.special import comb

from ..errors import ConfigurationError
from ..grid.mesh import BOUNDARY_SLOTS, lexicographic_indices


BASIS_TYPES = ('bernstein', 'lagrange')


#Legendre-Poly
def leg_poly(p: int, x: float):
    """Evaluate Legendre polynomial and its derivatives at a point.

    Uses the three-term recurrence relation to compute P_p(x) and its
    first two derivatives.

    Args:
        p: Polynomial order (degree). Must be non-negative.
        x: Evaluation point in [-1, 1].

    Returns:
        L0: Legendre polynomial value P_p(x).
        L0_1: First derivative dP_p/dx at x.
        L0_2: Second derivative d²P_p/dx² at x.
    """
    L1, L1_1, L1_2 = 0, 0, 0
    L0, L0_1, L0_2 = 1, 0, 0

    for i in range(1, p+1):
        L2, L2_1, L2_2 = L1, L1_1, L1_2
        L1, L1_1, L1_2 = L0, L0_1, L0_2
        a = (2*i-1)/i
        b = (i-1)/i
        L0 = a*x*L1 - b*L2
        L0_1 = a*(L1+x*L1_1) - b*L2_1
        L0_2 = a*(2*L1_1+x*L1_2) - b*L2_2

    return L0, L0_1, L0_2


### Routine for generating Legendre-Gauss_Lobatto points
def lgl_gen(P: int):
    """Generate Legendre-Gauss-Lobatto quadrature nodes and weights.

    LGL nodes are the roots of (1-x²)P'_{P-1}(x), which always include
    the endpoints x = ±1.

    Args:
        P: Number of nodes. Must be >= 2.

    Returns:
        lgl_nodes: LGL node locations in [-1, 1], shape (P,).
        lgl_weights: Corresponding quadrature weights, shape (P,).

    Note:
        Nodes are computed via Newton iteration on the Legendre polynomial.
        The rule is exact for polynomials of degree <= 2P-3.
    """
    if P < 2:
        raise ValueError(f"LGL rule needs at least 2 nodes, got {P}")

    p = P-1  # Poly order
    ph = int(np.floor((p+1)/2.0))

    lgl_nodes = np.zeros(P)
    lgl_weights = np.zeros(P)

    for i in range(1, ph+1):
        x = np.cos((2*i-1)*np.pi/(2*p+1))

        for k in range(1, 21):
            L0, L0_1, L0_2 = leg_poly(p, x)

            dx = -((1-x**2)*L0_1)/(-2*x*L0_1 + (1-x**2)*L0_2)
            x = x+dx

            if abs(dx) < 1.0e-20:
                break

        L0, _, _ = leg_poly(p, x)
        lgl_nodes[p+1-i] = x
        lgl_weights[p+1-i] = 2/(p*(p+1)*L0**2)

    # Check for zero root
    if p+1 != 2*ph:
        x = 0
        L0, _, _ = leg_poly(p, x)
        lgl_nodes[ph] = x
        lgl_weights[ph] = 2/(p*(p+1)*L0**2)

    # Find remainder of roots via symmetry
    for i in range(1, ph+1):
        lgl_nodes[i-1] = -lgl_nodes[p+1-i]
        lgl_weights[i-1] = lgl_weights[p+1-i]

    return lgl_nodes, lgl_weights


def quadrature_rule(nq: int):
    """LGL rule with nq points mapped to [0, 1]; weights sum to one."""
    xs, ws = lgl_gen(nq)
    return 0.5*(xs + 1.0), 0.5*ws


def tensor_quadrature(nq: int, dim: int):
    """
    Tensor-product LGL rule on [0, 1]^dim.

    Args:
        nq: Points per axis.
        dim: Dimension; 0 gives the single-point rule used on 1D faces.

    Returns:
        pts: Quadrature points, shape (nq**dim, dim), x fastest.
        weights: Quadrature weights, shape (nq**dim,).
    """
    if dim == 0:
        return np.zeros((1, 0)), np.ones(1)
    xs, ws = quadrature_rule(nq)
    idx = lexicographic_indices((nq,) * dim)
    return xs[idx], np.prod(ws[idx], axis=1)


#Lagrange basis
def Lagrange_basis(P: int, Q: int, xlgl, xs):
    """Compute Lagrange basis functions and derivatives at evaluation points.

    Args:
        P: Number of interpolation points (basis functions).
        Q: Number of points to evaluate at.
        xlgl: Interpolation nodes, shape (P,).
        xs: Evaluation points, shape (Q,).

    Returns:
        psi: Basis function values, shape (P, Q). psi[i,l] = Lᵢ(xs[l]).
        dpsi: Basis function derivatives, shape (P, Q).

    Note:
        Lagrange basis Lᵢ(x) = ∏_{j≠i} (x - xⱼ)/(xᵢ - xⱼ) satisfies
        Lᵢ(xⱼ) = δᵢⱼ. With a single node the basis is the constant 1.
    """
    psi = np.zeros([P, Q])
    dpsi = np.zeros([P, Q])

    for l in range(Q):
        xl = xs[l]

        for i in range(P):
            xi = xlgl[i]
            psi[i][l] = 1
            dpsi[i][l] = 0

            for j in range(P):
                xj = xlgl[j]
                if i != j:
                    psi[i][l] = psi[i][l]*((xl-xj)/(xi-xj))
                ddpsi = 1
                if i != j:
                    for k in range(P):
                        xk = xlgl[k]
                        if k != i and k != j:
                            ddpsi = ddpsi*((xl-xk)/(xi-xk))

                    dpsi[i][l] = dpsi[i][l]+(ddpsi/(xi-xj))

    return psi, dpsi


def bernstein_basis(P: int, Q: int, xs):
    """Compute Bernstein basis functions and derivatives on [0, 1].

    The degree p = P-1 Bernstein polynomials

        B_i(x) = C(p, i) x^i (1-x)^(p-i)

    are non-negative and sum to one, which is what makes the lumped mass
    positive and the discrete upwinding bounds meaningful.

    Args:
        P: Number of basis functions (order + 1).
        Q: Number of evaluation points.
        xs: Evaluation points in [0, 1], shape (Q,).

    Returns:
        psi: Basis values, shape (P, Q).
        dpsi: Basis derivatives, shape (P, Q).
    """
    xs = np.asarray(xs, dtype=float)[:Q]
    p = P-1
    psi = np.zeros([P, Q])
    dpsi = np.zeros([P, Q])

    if p == 0:
        psi[0, :] = 1.0
        return psi, dpsi

    for i in range(P):
        psi[i] = comb(p, i) * xs**i * (1.0 - xs)**(p-i)

    # dB_i^p = p (B_{i-1}^{p-1} - B_i^{p-1})
    lower, _ = bernstein_basis(p, Q, xs)
    for i in range(P):
        left = lower[i-1] if i > 0 else 0.0
        right = lower[i] if i < p else 0.0
        dpsi[i] = p * (left - right)

    return psi, dpsi


# =============================================================================
# Tensor-Product Reference Element
# =============================================================================

class ReferenceElement:
    """
    Tensor-product reference element on [0, 1]^dim.

    Local dofs are numbered lexicographically (x fastest), so dof `i` has the
    1D factors given by the rows of `lex[i]`.

    Attributes:
        dim (int): Spatial dimension.
        order (int): Polynomial order p.
        basis_type (str): 'bernstein' or 'lagrange'.
        ndof1 (int): Dofs per axis (p + 1).
        ndof (int): Dofs per element ((p + 1)**dim).
        lex (ndarray): Multi-index of every local dof, shape (ndof, dim).
        nodes1d (ndarray): 1D nodal positions used for interpolation.
    """

    def __init__(self, dim, order, basis_type='bernstein'):
        if basis_type not in BASIS_TYPES:
            raise ConfigurationError(f"Unknown basis type: {basis_type!r}")
        if order < 0:
            raise ConfigurationError(f"Polynomial order must be >= 0, got {order}")

        self.dim = dim
        self.order = order
        self.basis_type = basis_type
        self.ndof1 = order + 1
        self.ndof = self.ndof1**dim
        self.lex = lexicographic_indices((self.ndof1,) * dim)

        if order == 0:
            self.nodes1d = np.array([0.5])
        elif basis_type == 'bernstein':
            self.nodes1d = np.arange(self.ndof1) / order
        else:
            self.nodes1d = quadrature_rule(self.ndof1)[0]

    def shape_1d(self, xs):
        """1D basis values and derivatives at points xs, shape (p+1, len(xs))."""
        xs = np.asarray(xs, dtype=float)
        if self.basis_type == 'bernstein':
            return bernstein_basis(self.ndof1, len(xs), xs)
        return Lagrange_basis(self.ndof1, len(xs), self.nodes1d, xs)

    def calc_shape(self, pts):
        """Basis values at reference points pts (npts, dim) -> (ndof, npts)."""
        pts = np.asarray(pts, dtype=float)
        shape = np.ones((self.ndof, len(pts)))
        for d in range(self.dim):
            psi, _ = self.shape_1d(pts[:, d])
            shape *= psi[self.lex[:, d]]
        return shape

    def calc_dshape(self, pts):
        """Reference gradients at pts (npts, dim) -> (dim, ndof, npts)."""
        pts = np.asarray(pts, dtype=float)
        factors = [self.shape_1d(pts[:, d]) for d in range(self.dim)]
        dshape = np.ones((self.dim, self.ndof, len(pts)))
        for a in range(self.dim):
            for d in range(self.dim):
                psi, dpsi = factors[d]
                dshape[a] *= (dpsi if a == d else psi)[self.lex[:, d]]
        return dshape

    def nodes(self):
        """Reference positions of the dofs, shape (ndof, dim)."""
        return self.nodes1d[self.lex]

    def bdr_dofs(self):
        """
        Local dofs on each boundary slot.

        Returns:
            Integer table of shape (numDofs, numBdrs); column s lists the dofs
            of slot s. Segments use [[0, p]]; quads list each edge in
            counter-clockwise traversal of the element; hexes list each face
            in lexicographic order of its two in-face axes.
        """
        p = self.order
        n = self.ndof1
        if self.dim == 1:
            return np.array([[0, p]], dtype=int)

        if self.dim == 2:
            table = np.zeros((n, 4), dtype=int)
            for i in range(n):
                table[i, 0] = i
                table[i, 1] = i*n + p
                table[i, 2] = n*n - 1 - i
                table[i, 3] = (p - i)*n
            return table

        slots = BOUNDARY_SLOTS[3]
        table = np.zeros((n*n, len(slots)), dtype=int)
        for s, (axis, side) in enumerate(slots):
            table[:, s] = np.flatnonzero(self.lex[:, axis] == side*p)
        return table
