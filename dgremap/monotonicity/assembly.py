"""Face stencils and subcell weights consumed by the low-order schemes.

The evolution operator owns the two tensors

    bdr_int          (ne, numBdrs, numDofs**2)
    subcell_weights  (ne, numSubcells, numDofsSubcell)

and hands them to Assembly.refresh whenever the geometry changes: once at
setup for transport, before every evaluation for remap.
"""
import numpy as np

from ..dg.matrices import create_flux_terms, create_subcell_weights


class Assembly:
    """
    Assembler of the upwind face stencils and subcell Galerkin weights.

    Every computation is batched over all elements; the geometry is read from
    the current node positions of the mesh, so a remap step only needs to
    move the mesh and call refresh again.

    Args:
        dofs: DofInfo of the space.
        mesh: CartesianMesh.
        ref: ReferenceElement.
        lom: LowOrderMethod deciding which tensors are needed.
        velocity: Velocity coefficient (analytic or mesh velocity).
        remap: Use the remap sign conventions.
        face_nq: Face quadrature points per axis. Defaults to order + 2.
        subcell_nq: Subcell quadrature points per axis.
    """

    def __init__(self, dofs, mesh, ref, lom, velocity, remap=False,
                 face_nq=None, subcell_nq=3):
        self.dofs = dofs
        self.mesh = mesh
        self.ref = ref
        self.lom = lom
        self.velocity = velocity
        self.remap = remap
        self.face_nq = face_nq if face_nq is not None else ref.order + 2
        self.subcell_nq = subcell_nq
        # Sign of the convection form
        self.alpha = 1.0 if remap else -1.0

    def new_flux_terms(self):
        """Zero-initialized bdr_int of the right shape."""
        d = self.dofs
        return np.zeros((d.num_elements, d.num_bdrs, d.num_dofs**2))

    def new_subcell_weights(self):
        """Zero-initialized subcell_weights of the right shape."""
        d = self.dofs
        return np.zeros((d.num_elements, d.num_subcells, d.num_dofs_subcell))

    def compute_flux_terms(self, slot, bdr_int):
        """Fill bdr_int[:, slot] for every element."""
        bdr_int[:, slot] = create_flux_terms(
            self.mesh, self.ref, self.face_nq, self.velocity,
            self.dofs.bdr_dofs, slot, remap=self.remap,
        )

    def compute_subcell_weights(self, m, subcell_weights):
        """Fill subcell_weights[:, m] for every element."""
        subcell_weights[:, m] = create_subcell_weights(
            self.mesh, self.dofs.order, self.subcell_nq, self.velocity,
            m, self.alpha,
        )

    def refresh(self, bdr_int, subcell_weights):
        """Recompute the tensors the low-order method needs."""
        if self.lom.need_bdr:
            for slot in range(self.dofs.num_bdrs):
                self.compute_flux_terms(slot, bdr_int)
        if self.lom.need_subcells:
            for m in range(self.dofs.num_subcells):
                self.compute_subcell_weights(m, subcell_weights)
