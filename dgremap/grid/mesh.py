"""Structured Cartesian meshes for the DG remap/transport discretization.

This module provides the mesh topology and geometry consumed by the dof
tables and the operator assembly: segments, quadrilaterals or hexahedra on an
axis-aligned box, optionally periodic in any direction.

Key Components:
    CartesianMesh: Element/face connectivity and the multilinear (Q1)
        element map with movable node positions.
    BOUNDARY_SLOTS: Local face numbering (axis, side) for each dimension.
    lexicographic_indices: Multi-indices in x-fastest ordering.
    corner_shape: Multilinear shape functions of the element corners.

Note:
    Every array index follows the x-fastest lexicographic convention, for
    element numbering, vertex numbering, element corners and local dofs alike.
    Reference coordinates live in [0, 1]^dim.
"""
import numpy as np

from ..errors import ConfigurationError, TopologyError


# Local boundary slots as (axis, side). Quads traverse their edges
# counter-clockwise starting at the bottom edge.
BOUNDARY_SLOTS = {
    1: [(0, 0), (0, 1)],
    2: [(1, 0), (0, 1), (1, 1), (0, 0)],
    3: [(2, 0), (1, 0), (0, 1), (1, 1), (0, 0), (2, 1)],
}


def lexicographic_indices(shape):
    """Return all multi-indices of a box of the given shape, x fastest.

    Args:
        shape: Number of entries per axis, e.g. (nx, ny).

    Returns:
        Integer array of shape (prod(shape), len(shape)). Row r holds the
        multi-index (i_0, ..., i_{d-1}) with r = i_0 + n_0 * (i_1 + n_1 * ...).
    """
    shape = tuple(int(n) for n in shape)
    dim = len(shape)
    if dim == 0:
        return np.zeros((1, 0), dtype=int)
    return np.indices(shape[::-1]).reshape(dim, -1)[::-1].T.copy()


def corner_shape(pts):
    """Evaluate the multilinear corner shape functions and their gradients.

    Args:
        pts: Reference points in [0, 1]^dim, shape (npts, dim).

    Returns:
        N: Shape values, shape (2**dim, npts).
        dN: Reference gradients, shape (dim, 2**dim, npts).
    """
    pts = np.asarray(pts, dtype=float)
    npts, dim = pts.shape
    corners = lexicographic_indices((2,) * dim)

    N = np.ones((len(corners), npts))
    dN = np.ones((dim, len(corners), npts))
    for c, bits in enumerate(corners):
        for d in range(dim):
            val = pts[:, d] if bits[d] else 1.0 - pts[:, d]
            N[c] *= val
            for a in range(dim):
                if a == d:
                    dN[a, c] *= 1.0 if bits[d] else -1.0
                else:
                    dN[a, c] *= val
    return N, dN


class CartesianMesh:
    """
    Tensor-product mesh of an axis-aligned box.

    The mesh stores two kinds of data. Topology (element neighbors, face ids,
    the two elements sharing each face) is fixed at construction. Geometry is
    given by the positions of the (nx+1)^dim vertices and may be moved, which
    the remap mode uses to follow the mesh velocity.

    Attributes:
        dim (int): Spatial dimension (1, 2 or 3).
        nx (tuple): Number of elements per axis.
        periodic (tuple): Periodicity flag per axis.
        num_elements (int): Total number of elements.
        num_faces (int): Number of distinct faces (interior + exterior).
        vertices (ndarray): Initial vertex positions, shape (nv, dim).
        nodes (ndarray): Current vertex positions, shape (nv, dim).
        element_vertices (ndarray): Corner vertex ids, shape (ne, 2**dim).
        face_elements (ndarray): (elem1, elem2) per face, elem2 = -1 on the
            exterior boundary.
    """

    def __init__(self, nx, bounds=None, periodic=False):
        """
        Build the mesh topology and initial geometry.

        Args:
            nx: Elements per axis; an int gives a 1D mesh.
            bounds: Sequence of (lo, hi) per axis. Defaults to the unit box.
            periodic: Bool for all axes or one bool per axis.

        Raises:
            ConfigurationError: Unsupported dimension, empty axis or
                degenerate bounds.
            TopologyError: A periodic axis with fewer than two elements.
        """
        nx = tuple(int(n) for n in np.atleast_1d(nx))
        dim = len(nx)
        if dim not in BOUNDARY_SLOTS:
            raise ConfigurationError(f"Unsupported mesh dimension: {dim}")
        if min(nx) < 1:
            raise ConfigurationError(f"Every axis needs at least one element, got {nx}")

        if bounds is None:
            bounds = [(0.0, 1.0)] * dim
        bounds = np.asarray(bounds, dtype=float).reshape(dim, 2)
        if np.any(bounds[:, 1] <= bounds[:, 0]):
            raise ConfigurationError(f"Invalid mesh bounds: {bounds.tolist()}")

        if np.isscalar(periodic):
            periodic = (bool(periodic),) * dim
        periodic = tuple(bool(p) for p in periodic)
        if len(periodic) != dim:
            raise ConfigurationError(
                f"Expected {dim} periodicity flags, got {len(periodic)}"
            )
        for d in range(dim):
            # A single periodic element would be its own neighbor on both sides
            if periodic[d] and nx[d] < 2:
                raise TopologyError(
                    f"Periodic axis {d} needs at least 2 elements, got {nx[d]}"
                )

        self.dim = dim
        self.nx = nx
        self.bounds = bounds
        self.periodic = periodic
        self.num_elements = int(np.prod(nx))
        self.slots = BOUNDARY_SLOTS[dim]

        self._build_vertices()
        self._build_neighbors()
        self._build_faces()

    @classmethod
    def refined(cls, nx, levels, bounds=None, periodic=False):
        """Create a mesh uniformly refined `levels` times (nx * 2**levels)."""
        nx = np.atleast_1d(nx) * 2**int(levels)
        return cls(nx, bounds=bounds, periodic=periodic)

    # =========================================================================
    # Construction
    # =========================================================================

    def _build_vertices(self):
        nv_axis = tuple(n + 1 for n in self.nx)
        self.vertex_index = lexicographic_indices(nv_axis)
        h = (self.bounds[:, 1] - self.bounds[:, 0]) / np.array(self.nx)
        self.vertices = self.bounds[:, 0] + self.vertex_index * h
        self.nodes = self.vertices.copy()

        vstride = np.cumprod((1,) + nv_axis[:-1])
        self.element_index = lexicographic_indices(self.nx)
        corners = lexicographic_indices((2,) * self.dim)
        self.element_vertices = (
            (self.element_index[:, None, :] + corners[None, :, :]) @ vstride
        )

    def _build_neighbors(self):
        estride = np.cumprod((1,) + self.nx[:-1])
        ne = self.num_elements
        self._neighbors = np.full((ne, len(self.slots)), -1, dtype=int)

        for s, (axis, side) in enumerate(self.slots):
            nb = self.element_index.copy()
            nb[:, axis] += 1 if side else -1
            if self.periodic[axis]:
                nb[:, axis] %= self.nx[axis]
                valid = np.ones(ne, dtype=bool)
            else:
                valid = (nb[:, axis] >= 0) & (nb[:, axis] < self.nx[axis])
            ids = nb @ estride
            self._neighbors[valid, s] = ids[valid]

    def _build_faces(self):
        ne = self.num_elements
        nslots = len(self.slots)
        self.face_of = np.full((ne, nslots), -1, dtype=int)
        face_elements = []
        next_id = 0

        # Faces on the upper side of each element own the interface
        for s, (axis, side) in enumerate(self.slots):
            if side != 1:
                continue
            self.face_of[:, s] = next_id + np.arange(ne)
            face_elements.append(np.column_stack([np.arange(ne), self._neighbors[:, s]]))
            next_id += ne

        for s, (axis, side) in enumerate(self.slots):
            if side != 0:
                continue
            opposite = self.slots.index((axis, 1))
            nb = self._neighbors[:, s]
            interior = nb >= 0
            self.face_of[interior, s] = self.face_of[nb[interior], opposite]

            exterior = np.flatnonzero(~interior)
            self.face_of[exterior, s] = next_id + np.arange(len(exterior))
            face_elements.append(
                np.column_stack([exterior, np.full(len(exterior), -1, dtype=int)])
            )
            next_id += len(exterior)

        self.face_elements = np.vstack(face_elements)
        self.num_faces = next_id

    # =========================================================================
    # Topology Queries
    # =========================================================================

    def element_boundaries(self, k):
        """Face ids of element k, ordered by boundary slot."""
        return self.face_of[k].copy()

    def face_neighbor(self, face, k):
        """
        Element on the other side of a face as seen from element k.

        Returns:
            Element id, or -1 if the face lies on the exterior boundary.

        Raises:
            TopologyError: If element k does not touch the face.
        """
        e1, e2 = self.face_elements[face]
        if e1 == k:
            return int(e2)
        if e2 == k:
            return int(e1)
        raise TopologyError(f"Element {k} is not adjacent to face {face}")

    @property
    def neighbor_table(self):
        """Face neighbors of all elements, shape (ne, numBdrs), -1 if none."""
        return self._neighbors

    def neighbors(self, k):
        """Face neighbors of element k per slot (-1 on the exterior boundary)."""
        return self._neighbors[k].copy()

    def face_slot(self, k, face):
        """Local slot of `face` within element k."""
        slots = np.flatnonzero(self.face_of[k] == face)
        if len(slots) == 0:
            raise TopologyError(f"Element {k} is not adjacent to face {face}")
        return int(slots[0])

    # =========================================================================
    # Geometry
    # =========================================================================

    def set_nodes(self, nodes):
        """Move the vertices to new positions, shape (nv, dim)."""
        nodes = np.asarray(nodes, dtype=float)
        if nodes.shape != self.vertices.shape:
            raise ValueError(
                f"Node array has shape {nodes.shape}, expected {self.vertices.shape}"
            )
        self.nodes = nodes.copy()

    def reset_nodes(self):
        """Move the vertices back to their initial positions."""
        self.nodes = self.vertices.copy()

    def bounding_box(self):
        """Lower and upper corner of the initial vertex cloud."""
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    def boundary_vertex_mask(self):
        """Vertices lying on a non-periodic side of the box."""
        mask = np.zeros(len(self.vertices), dtype=bool)
        for d in range(self.dim):
            if self.periodic[d]:
                continue
            idx = self.vertex_index[:, d]
            mask |= (idx == 0) | (idx == self.nx[d])
        return mask

    def periodic_vertex_map(self):
        """
        Representative vertex of every vertex under the periodic identification.

        Vertices on the upper side of a periodic axis map to their copy on the
        lower side; all others map to themselves. Gathering a vertex field
        through this map gives both copies of a periodic vertex the same value.
        """
        idx = self.vertex_index.copy()
        for d in range(self.dim):
            if self.periodic[d]:
                idx[idx[:, d] == self.nx[d], d] = 0
        vstride = np.cumprod((1,) + tuple(n + 1 for n in self.nx)[:-1])
        return idx @ vstride

    def transformation(self, pts):
        """
        Evaluate the element maps at reference points.

        Args:
            pts: Reference points in [0, 1]^dim, shape (npts, dim).

        Returns:
            x: Physical points, shape (ne, npts, dim).
            jac: Jacobians, shape (ne, npts, dim, dim), with
                jac[e, q, i, a] = dx_i / dxi_a.
        """
        N, dN = corner_shape(pts)
        X = self.nodes[self.element_vertices]
        x = np.einsum('cq,ecd->eqd', N, X)
        jac = np.einsum('acq,ecd->eqda', dN, X)
        return x, jac

