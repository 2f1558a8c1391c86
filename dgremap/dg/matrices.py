"""Discontinuous Galerkin operator construction utilities.

This module provides the element and global operators of the DG
discretization of the scalar advection (transport) and remap equations

    du/dt + v · grad(u) = 0        (transport, velocity v)
    M(t) du/dt = K(t) u            (remap, mesh velocity w)

on tensor-product meshes with a Bernstein (or Lagrange) basis, together with
the sparse utilities needed by the low-order discrete upwinding scheme.

The semi-discrete high-order system reads

    M du/dt = K u + b + (upwind face terms)

where:
    M: Mass matrix (block diagonal, one block per element)
    K: Convection matrix, K_ij = alpha ∫ φ_i v·grad(φ_j) dx
    b: Inflow load on the exterior boundary

Key Components:
    create_mass_matrix / create_lumped_mass: Element mass and its row sums.
    create_convection_matrix: Element convection matrices.
    create_flux_terms: Upwind face stencil per boundary slot (bdrInt).
    create_subcell_weights: Q1 Galerkin weights on the subcells.
    create_inflow_load: Boundary load b.
    build_symmetric_offset_map: Transpose-entry offsets of a CSR pattern.
    compute_discrete_upwinding_matrix: Low-order operator D from K.

Note:
    Element arrays are batched over all elements: element matrices have
    shape (ne, nd, nd) and quadrature data shape (ne, nq, ...). Global dof
    index is element * nd + local.

References:
    Kuzmin, D. (2012). Algebraic flux correction I. Scalar conservation laws.
    Hajduk, H. et al. (2020). Matrix-free subcell residual distribution for
    Bernstein finite elements: Low-order schemes and FCT. CMAME 359.
"""

import numpy as np
from scipy import sparse

from .basis import tensor_quadrature
from ..errors import TopologyError
from ..grid.mesh import BOUNDARY_SLOTS, corner_shape, lexicographic_indices


# =============================================================================
# Geometry Helpers
# =============================================================================

def element_geometry(mesh, pts):
    """
    Physical points, |det J| and J^{-1} of every element at reference points.

    Returns:
        x: shape (ne, npts, dim).
        detJ: Absolute Jacobian determinant, shape (ne, npts).
        jinv: Inverse Jacobian, shape (ne, npts, dim, dim), with
            jinv[e, q, a, i] = dxi_a / dx_i.
    """
    x, jac = mesh.transformation(pts)
    return x, np.abs(np.linalg.det(jac)), np.linalg.inv(jac)


def face_points(dim, nq, slot):
    """Reference quadrature points on boundary slot `slot` of [0, 1]^dim."""
    axis, side = BOUNDARY_SLOTS[dim][slot]
    fpts, fw = tensor_quadrature(nq, dim - 1)
    return np.insert(fpts, axis, float(side), axis=1), fw


def face_geometry(mesh, nq, slot):
    """
    Quadrature data on one boundary slot of every element.

    The area-weighted outward normal follows Nanson's formula,
    n dA = |det J| J^{-T} N dA_ref, with N the reference normal of the slot.

    Returns:
        pts: Reference points, shape (nfq, dim).
        x: Physical points, shape (ne, nfq, dim).
        weights: Quadrature weight times face area element, shape (ne, nfq).
        normal: Unit outward normals, shape (ne, nfq, dim).
    """
    axis, side = mesh.slots[slot]
    pts, fw = face_points(mesh.dim, nq, slot)
    x, detJ, jinv = element_geometry(mesh, pts)

    nvec = (2*side - 1) * detJ[..., None] * jinv[:, :, axis, :]
    area = np.linalg.norm(nvec, axis=-1)
    return pts, x, fw * area, nvec / area[..., None]


def upwind_normal_velocity(vn, remap=False):
    """
    Inflow part of the normal velocity used by the face stencils.

    Transport keeps min(0, v·n); remap moves the mesh against the flow and
    uses -max(0, w·n).
    """
    if remap:
        return -np.maximum(vn, 0.0)
    return np.minimum(vn, 0.0)


# =============================================================================
# Element Matrices
# =============================================================================

def create_mass_matrix(mesh, ref, nq):
    """
    Create element mass matrices.

        M^e_ij = ∫_e φ_i φ_j dx

    Args:
        mesh: CartesianMesh providing the element maps.
        ref: ReferenceElement with the basis.
        nq: Quadrature points per axis.

    Returns:
        Element mass matrices, shape (ne, nd, nd).
    """
    pts, w = tensor_quadrature(nq, mesh.dim)
    shape = ref.calc_shape(pts)
    _, detJ, _ = element_geometry(mesh, pts)
    return np.einsum('eq,iq,jq->eij', w * detJ, shape, shape)


def create_lumped_mass(Me):
    """Row-sum lumped mass as a global vector of length ne * nd."""
    return Me.sum(axis=2).ravel()


def create_convection_matrix(mesh, ref, nq, velocity, alpha):
    """
    Create element convection matrices.

        K^e_ij = alpha ∫_e φ_i (v · grad φ_j) dx

    With alpha = -1 and the transport velocity this is the advective operator
    moved to the right-hand side; with alpha = +1 and the mesh velocity it is
    the remap operator.

    Args:
        mesh: CartesianMesh.
        ref: ReferenceElement.
        nq: Quadrature points per axis.
        velocity: Coefficient with eval(mesh, pts, x) -> (ne, nq, dim).
        alpha: Scaling of the bilinear form.

    Returns:
        Element convection matrices, shape (ne, nd, nd).

    Note:
        A positive partition of unity makes every row of K^e sum to zero,
        since grad(Σ_j φ_j) = 0.
    """
    pts, w = tensor_quadrature(nq, mesh.dim)
    shape = ref.calc_shape(pts)
    dshape = ref.calc_dshape(pts)
    x, detJ, jinv = element_geometry(mesh, pts)

    v = velocity.eval(mesh, pts, x)
    # v · grad_x φ = (J^{-1} v) · grad_xi φ
    vref = np.einsum('eqai,eqi->eqa', jinv, v)
    adv = np.einsum('eqa,ajq->eqj', vref, dshape)
    return alpha * np.einsum('eq,iq,eqj->eij', w * detJ, shape, adv)


def create_preconditioned_convection(Me, Ke):
    """Element matrices diag(M_L) (M^e)^{-1} K^e of preconditioned upwinding."""
    ml = Me.sum(axis=2)
    return ml[:, :, None] * np.linalg.solve(Me, Ke)


# =============================================================================
# Face and Subcell Terms
# =============================================================================

def create_flux_terms(mesh, ref, nq, velocity, bdr_dofs, slot, remap=False):
    """
    Upwind face stencil of one boundary slot for every element.

        bdrInt[k, i*numDofs + j] = -∫_face vn φ_{b_i} φ_{b_j} dA

    with b = bdr_dofs[:, slot] and vn the upwind normal velocity
    (see upwind_normal_velocity). Entries are non-negative for a positive
    basis.

    Args:
        mesh: CartesianMesh.
        ref: ReferenceElement.
        nq: Face quadrature points per axis.
        velocity: Velocity coefficient.
        bdr_dofs: Boundary dof table (numDofs, numBdrs).
        slot: Boundary slot.
        remap: Use the remap sign convention.

    Returns:
        Flux terms, shape (ne, numDofs**2).
    """
    pts, x, weights, normal = face_geometry(mesh, nq, slot)
    shape = ref.calc_shape(pts)[bdr_dofs[:, slot]]
    v = velocity.eval(mesh, pts, x)
    vn = upwind_normal_velocity(np.sum(v * normal, axis=-1), remap)

    terms = -np.einsum('eq,iq,jq->eij', weights * vn, shape, shape)
    return terms.reshape(mesh.num_elements, -1)


def create_inflow_load(mesh, ref, nq, velocity, inflow, bdr_dofs, remap=False):
    """
    Boundary load on exterior faces.

        b_i = -∫_{∂Ω} vn g φ_i dA

    where vn is the upwind normal velocity and g the inflow function.

    Returns:
        Load vector of length ne * nd.
    """
    ne, nd, dim = mesh.num_elements, ref.ndof, mesh.dim
    b = np.zeros((ne, nd))

    for slot in range(len(mesh.slots)):
        exterior = np.flatnonzero(mesh.neighbor_table[:, slot] < 0)
        if len(exterior) == 0:
            continue
        pts, x, weights, normal = face_geometry(mesh, nq, slot)
        shape = ref.calc_shape(pts)[bdr_dofs[:, slot]]
        v = velocity.eval(mesh, pts, x)
        vn = upwind_normal_velocity(np.sum(v * normal, axis=-1), remap)
        g = np.asarray(inflow(x.reshape(-1, dim)), dtype=float).reshape(ne, -1)

        load = -np.einsum('eq,iq->ei', weights * vn * g, shape)
        b[np.ix_(exterior, bdr_dofs[:, slot])] += load[exterior]

    return b.ravel()


def create_subcell_weights(mesh, order, nq, velocity, m, alpha):
    """
    Galerkin weights of subcell m for every element.

        W[k, c] = alpha ∫_{subcell} v · grad ψ_c dx

    where ψ_c are the multilinear functions of the subcell corners (in
    lexicographic corner order) and the test function is constant.

    Args:
        mesh: CartesianMesh.
        order: Polynomial order p; the element holds p**dim subcells.
        nq: Quadrature points per axis on the subcell.
        velocity: Velocity coefficient.
        m: Subcell index (lexicographic).
        alpha: Scaling, -1 for transport and +1 for remap.

    Returns:
        Weights, shape (ne, 2**dim).
    """
    dim = mesh.dim
    corner = lexicographic_indices((order,) * dim)[m]
    eta, w = tensor_quadrature(nq, dim)
    pts = (corner + eta) / order

    x, jac = mesh.transformation(pts)
    jac_sub = jac / order
    detJ = np.abs(np.linalg.det(jac_sub))
    jinv = np.linalg.inv(jac_sub)

    _, dpsi = corner_shape(eta)
    v = velocity.eval(mesh, pts, x)
    vref = np.einsum('eqai,eqi->eqa', jinv, v)
    return alpha * np.einsum('eq,eqa,acq->ec', w * detJ, vref, dpsi)


# =============================================================================
# Global Assembly
# =============================================================================

def block_diagonal_triplets(Ae):
    """(rows, cols, vals) of the block-diagonal matrix built from Ae."""
    ne, nd, _ = Ae.shape
    base = np.arange(ne)[:, None, None] * nd
    rows, cols = np.broadcast_arrays(
        base + np.arange(nd)[None, :, None],
        base + np.arange(nd)[None, None, :],
    )
    return rows.ravel(), cols.ravel(), Ae.ravel()


def face_coupling_triplets(bdr_int, nbr_dof, bdr_dofs, nd):
    """
    (rows, cols, vals) of the upwind face terms written into a matrix.

    For every element k, slot s and boundary dofs i, j the stencil value
    B = bdrInt[k, s, i*numDofs + j] couples the face dof i to the neighbor
    dof coincident with j:

        A[own_i, nbr_j] += B,    A[own_i, own_j] -= B

    Exterior slots only contribute the diagonal block. Zero stencil values
    are kept so the resulting pattern is structurally symmetric.
    """
    ne, nbdrs, _ = bdr_int.shape
    nD = bdr_dofs.shape[0]
    base = np.arange(ne)[:, None, None] * nd
    rows, cols, vals = [], [], []

    for s in range(nbdrs):
        B = bdr_int[:, s].reshape(ne, nD, nD)
        own_i = np.broadcast_to(base + bdr_dofs[:, s][None, :, None], B.shape)
        own_j = np.broadcast_to(base + bdr_dofs[:, s][None, None, :], B.shape)
        nbr_j = np.broadcast_to(nbr_dof[:, s][:, None, :], B.shape)
        interior = nbr_j >= 0

        rows += [own_i.ravel(), own_i[interior]]
        cols += [own_j.ravel(), nbr_j[interior]]
        vals += [-B.ravel(), B[interior]]

    return np.concatenate(rows), np.concatenate(cols), np.concatenate(vals)


def assemble_csr(n, *triplets):
    """
    Sum (rows, cols, vals) triplets into an n x n CSR matrix.

    Duplicates are summed, explicit zeros are kept and column indices are
    sorted, so assembling the same pattern twice gives identical structure.
    """
    rows = np.concatenate([t[0] for t in triplets])
    cols = np.concatenate([t[1] for t in triplets])
    vals = np.concatenate([t[2] for t in triplets])
    A = sparse.coo_matrix((vals, (rows, cols)), shape=(n, n)).tocsr()
    A.sum_duplicates()
    A.sort_indices()
    return A


# =============================================================================
# Discrete Upwinding
# =============================================================================

def build_symmetric_offset_map(A):
    """
    Offsets of the transposed entries of a CSR matrix.

    For every stored entry k at (i, j), smap[k] is the storage offset of
    (j, i).

    Args:
        A: scipy CSR matrix with sorted column indices.

    Returns:
        Integer array of length A.nnz.

    Raises:
        TopologyError: If some (j, i) is not stored, i.e. the sparsity
            pattern is not structurally symmetric.
    """
    n = A.shape[0]
    rows = np.repeat(np.arange(n, dtype=np.int64), np.diff(A.indptr))
    cols = A.indices.astype(np.int64)

    keys = rows * n + cols
    order = np.argsort(keys, kind='stable')
    sorted_keys = keys[order]
    tkeys = cols * n + rows

    pos = np.minimum(np.searchsorted(sorted_keys, tkeys), len(keys) - 1)
    if len(keys) and not np.array_equal(sorted_keys[pos], tkeys):
        raise TopologyError("Sparsity pattern is not structurally symmetric")
    return order[pos]


def compute_discrete_upwinding_matrix(K, smap):
    """
    Low-order operator obtained by discrete upwinding.

        d_ij = max(0, -K_ij, -K_ji)                 (i != j)
        D_ij = K_ij + d_ij                          (i != j)
        D_ii = K_ii - Σ_{j != i} d_ij

    Off-diagonal entries of D are non-negative, D is as symmetric in its
    artificial diffusion as K allows, and the row sums of D equal those of K.

    Args:
        K: CSR matrix with all diagonal entries stored.
        smap: Output of build_symmetric_offset_map(K).

    Returns:
        D as a CSR matrix sharing the pattern of K.
    """
    n = K.shape[0]
    rows = np.repeat(np.arange(n), np.diff(K.indptr))
    kij = K.data
    kji = K.data[smap]
    off = rows != K.indices

    dij = np.where(off, np.maximum(0.0, np.maximum(-kij, -kji)), 0.0)
    diffusion = np.bincount(rows, weights=dij, minlength=n)

    D = K.copy()
    D.data = kij + dij
    diag = ~off
    D.data[diag] = kij[diag] - diffusion[rows[diag]]
    return D
