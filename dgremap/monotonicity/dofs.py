"""Dof connectivity tables used by the monotonicity treatment.

DofInfo turns the element/face connectivity of the mesh into the tables
needed by the limiters:

    map_for_bounds: for every dof, the elements whose value range bounds it
        (own element, face neighbors on faces through the dof, and the
        diagonal neighbors across edges and corners through the dof);
    nbr_dof: for every element, slot and face dof, the coincident dof of the
        element across that face (-1 on the exterior boundary);
    sub2ind: local dofs at the corners of every subcell.

It also holds the running element ranges (xe_min, xe_max) and the derived
per-dof bounds (xi_min, xi_max) used by flux-corrected transport.
"""
from itertools import combinations, product

import numpy as np

from ..errors import TopologyError
from ..grid.mesh import lexicographic_indices


class DofInfo:
    """
    Precomputed dof tables of a discontinuous tensor-product space.

    Attributes:
        dim (int): Spatial dimension.
        order (int): Polynomial order p.
        nd (int): Dofs per element.
        num_elements (int): Number of elements.
        bdr_dofs (ndarray): Local dofs per boundary slot, (numDofs, numBdrs).
        num_dofs (int): Dofs per boundary slot.
        num_bdrs (int): Boundary slots per element.
        num_subcells (int): Subcells per element (p**dim).
        num_dofs_subcell (int): Corners per subcell (2**dim).
        nbr_dof (ndarray): Coincident neighbor dofs, (ne, numBdrs, numDofs).
        map_for_bounds (list): Sorted element ids bounding each dof.
        sub2ind (ndarray): Subcell corner dofs, (numSubcells, numDofsSubcell).
        xi_min, xi_max (ndarray): Per-dof bounds, length ne * nd.
        xe_min, xe_max (ndarray): Per-element ranges, length ne.
    """

    def __init__(self, mesh, ref):
        self.mesh = mesh
        self.dim = mesh.dim
        self.order = ref.order
        self.nd = ref.ndof
        self.num_elements = mesh.num_elements
        self._lex = ref.lex
        self._strides = ref.ndof1 ** np.arange(self.dim)

        self.bdr_dofs = ref.bdr_dofs()
        self.num_dofs, self.num_bdrs = self.bdr_dofs.shape
        self.num_subcells = self.order**self.dim
        self.num_dofs_subcell = 2**self.dim

        ndofs = self.num_elements * self.nd
        self.xi_min = np.zeros(ndofs)
        self.xi_max = np.zeros(ndofs)
        self.xe_min = np.zeros(self.num_elements)
        self.xe_max = np.zeros(self.num_elements)

        self.fill_neighbor_dofs()
        self.get_vertex_bounds_map()
        self.fill_subcell_to_cell_dof()

    # =========================================================================
    # Neighbor Dofs
    # =========================================================================

    def face_correspondence(self, slot, nbr_slot):
        """
        Match the dofs of `slot` with those of the neighbor's `nbr_slot`.

        Returns:
            perm with bdr_dofs[perm[j], nbr_slot] coincident with
            bdr_dofs[j, slot]. For segments and quads this is the reversal
            numDofs - 1 - j, since neighboring quads traverse a shared edge
            in opposite directions.
        """
        axis = self.mesh.slots[slot][0]
        mirrored = self._lex[self.bdr_dofs[:, slot]].copy()
        mirrored[:, axis] = self.order - mirrored[:, axis]
        targets = mirrored @ self._strides

        position = {int(dof): j for j, dof in enumerate(self.bdr_dofs[:, nbr_slot])}
        try:
            return np.array([position[int(t)] for t in targets], dtype=int)
        except KeyError:
            raise TopologyError(
                f"Boundary slots {slot} and {nbr_slot} do not share a face"
            ) from None

    def fill_neighbor_dofs(self):
        """Fill nbr_dof from the face connectivity of the mesh."""
        mesh = self.mesh
        self.nbr_dof = np.full(
            (self.num_elements, self.num_bdrs, self.num_dofs), -1, dtype=int
        )
        perms = {}

        for k in range(self.num_elements):
            faces = mesh.element_boundaries(k)
            for i in range(self.num_bdrs):
                nbr = mesh.face_neighbor(faces[i], k)
                if nbr < 0:
                    continue
                ind = mesh.face_slot(nbr, faces[i])
                if (i, ind) not in perms:
                    perms[(i, ind)] = self.face_correspondence(i, ind)
                self.nbr_dof[k, i] = nbr*self.nd + self.bdr_dofs[perms[(i, ind)], ind]

    # =========================================================================
    # Bounds Map
    # =========================================================================

    def get_common_elem(self, el, el1, el2):
        """
        Element other than `el` that is a face neighbor of both el1 and el2.

        Returns:
            The common neighbor, or -1 if el1 or el2 is -1 or none exists.

        Raises:
            TopologyError: If more than one distinct element qualifies.
        """
        if el1 < 0 or el2 < 0:
            return -1
        common = set(self.mesh.neighbors(el1)) & set(self.mesh.neighbors(el2))
        common -= {el, -1}
        if len(common) > 1:
            raise TopologyError(
                f"Found multiple common neighbor elements of {el1} and {el2}: "
                f"{sorted(common)}"
            )
        return int(common.pop()) if common else -1

    def _shared_dofs(self, *slots):
        shared = self.bdr_dofs[:, slots[0]]
        for s in slots[1:]:
            shared = np.intersect1d(shared, self.bdr_dofs[:, s])
        return shared

    def get_vertex_bounds_map(self):
        """Fill map_for_bounds (and its padded table) from the mesh topology."""
        mesh = self.mesh
        nd = self.nd
        slots = mesh.slots
        bounds = [set() for _ in range(self.num_elements * nd)]

        def add(k, el, dofs):
            if el >= 0:
                for j in dofs:
                    bounds[k*nd + j].add(el)

        pairs = [(a, b) for a, b in combinations(range(self.num_bdrs), 2)
                 if slots[a][0] != slots[b][0]]
        by_axis = [[s for s in range(self.num_bdrs) if slots[s][0] == d]
                   for d in range(self.dim)]

        for k in range(self.num_elements):
            add(k, k, range(nd))
            nbrs = [mesh.face_neighbor(f, k) for f in mesh.element_boundaries(k)]
            for i, nbr in enumerate(nbrs):
                add(k, nbr, self.bdr_dofs[:, i])

            if self.dim < 2:
                continue

            # Diagonal neighbors across the edges (corners in 2D)
            edge_nbrs = {}
            for a, b in pairs:
                el = self.get_common_elem(k, nbrs[a], nbrs[b])
                edge_nbrs[(a, b)] = el
                add(k, el, self._shared_dofs(a, b))

            if self.dim < 3:
                continue

            # Corner neighbors through the two edge neighbors of a z-face
            for a, b, c in product(by_axis[2], by_axis[1], by_axis[0]):
                el = self.get_common_elem(
                    nbrs[a], edge_nbrs[tuple(sorted((a, b)))],
                    edge_nbrs[tuple(sorted((a, c)))],
                )
                add(k, el, self._shared_dofs(a, b, c))

        self.map_for_bounds = [np.array(sorted(s), dtype=int) for s in bounds]

        width = max(len(s) for s in self.map_for_bounds)
        self.bounds_table = np.zeros((len(bounds), width), dtype=int)
        self.bounds_mask = np.zeros((len(bounds), width), dtype=bool)
        for i, elems in enumerate(self.map_for_bounds):
            self.bounds_table[i, :len(elems)] = elems
            self.bounds_mask[i, :len(elems)] = True

    # =========================================================================
    # Subcells
    # =========================================================================

    def fill_subcell_to_cell_dof(self):
        """Fill sub2ind: corners of subcell m in lexicographic corner order."""
        subcells = lexicographic_indices((self.order,) * self.dim)
        corners = lexicographic_indices((2,) * self.dim)
        self.sub2ind = (subcells[:, None, :] + corners[None, :, :]) @ self._strides

    # =========================================================================
    # Bounds
    # =========================================================================

    def compute_element_bounds(self, x):
        """Refresh xe_min/xe_max from the element values of x."""
        X = np.asarray(x).reshape(self.num_elements, self.nd)
        self.xe_min[:] = X.min(axis=1)
        self.xe_max[:] = X.max(axis=1)
        return self.xe_min, self.xe_max

    def compute_vertex_bounds(self, x, dof_ind):
        """
        Bounds of a single dof from the current element ranges.

        xe_min/xe_max must have been refreshed for x beforehand
        (compute_element_bounds); x itself is not read.
        """
        elems = self.map_for_bounds[dof_ind]
        self.xi_min[dof_ind] = self.xe_min[elems].min()
        self.xi_max[dof_ind] = self.xe_max[elems].max()

    def compute_bounds(self):
        """compute_vertex_bounds for every dof at once."""
        lo = np.where(self.bounds_mask, self.xe_min[self.bounds_table], np.inf)
        hi = np.where(self.bounds_mask, self.xe_max[self.bounds_table], -np.inf)
        self.xi_min[:] = lo.min(axis=1)
        self.xi_max[:] = hi.max(axis=1)
        return self.xi_min, self.xi_max
