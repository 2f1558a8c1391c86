"""Assembled DG operators of the transport/remap problem.

Discretization collects the global matrices the evolution operator needs:
the block-diagonal mass matrix M and its lumped version, the convection
matrix K (with the upwind face coupling when the basic discrete upwinding
scheme is used), the preconditioned element operator for the optimized
upwinding scheme, and the inflow load b.
"""
import numpy as np

from ..dg.basis import tensor_quadrature
from ..dg.matrices import (
    assemble_csr,
    block_diagonal_triplets,
    create_convection_matrix,
    create_flux_terms,
    create_inflow_load,
    create_lumped_mass,
    create_mass_matrix,
    create_preconditioned_convection,
    element_geometry,
    face_coupling_triplets,
)


class Discretization:
    """
    DG operators at the current mesh geometry.

    Attributes:
        M (csr_matrix): Mass matrix.
        Me (ndarray): Element mass matrices, (ne, nd, nd).
        lumped_mass (ndarray): Row sums of M.
        K (csr_matrix): Convection matrix.
        Kp (csr_matrix): diag(M_L) M^{-1} K per element, or None.
        b (ndarray): Inflow load.
    """

    def __init__(self, mesh, ref, dofs, lom, velocity, inflow, remap=False, nq=None):
        """
        Args:
            mesh: CartesianMesh.
            ref: ReferenceElement.
            dofs: DofInfo (neighbor dofs for the face coupling).
            lom: LowOrderMethod.
            velocity: Velocity coefficient.
            inflow: Callable g(x) with x of shape (npts, dim).
            remap: Remap sign conventions (alpha = +1, outflow stencil).
            nq: Quadrature points per axis, defaults to order + 2.
        """
        self.mesh = mesh
        self.ref = ref
        self.dofs = dofs
        self.lom = lom
        self.velocity = velocity
        self.inflow = inflow
        self.remap = remap
        self.nq = nq if nq is not None else ref.order + 2
        self.alpha = 1.0 if remap else -1.0
        self.ndofs = mesh.num_elements * ref.ndof

        self.assemble()

    def assemble(self):
        """(Re)assemble every operator at the current node positions."""
        mesh, ref, dofs = self.mesh, self.ref, self.dofs

        self.Me = create_mass_matrix(mesh, ref, self.nq)
        self.lumped_mass = create_lumped_mass(self.Me)
        self.M = assemble_csr(self.ndofs, block_diagonal_triplets(self.Me))

        self.Ke = create_convection_matrix(mesh, ref, self.nq, self.velocity, self.alpha)
        triplets = [block_diagonal_triplets(self.Ke)]
        if self.lom.faces_in_operator:
            bdr_int = np.stack([
                create_flux_terms(mesh, ref, self.nq, self.velocity,
                                  dofs.bdr_dofs, slot, remap=self.remap)
                for slot in range(dofs.num_bdrs)
            ], axis=1)
            triplets.append(
                face_coupling_triplets(bdr_int, dofs.nbr_dof, dofs.bdr_dofs, ref.ndof)
            )
        self.K = assemble_csr(self.ndofs, *triplets)

        self.Kp = None
        if self.lom.preconditioned:
            self.Kp = assemble_csr(
                self.ndofs,
                block_diagonal_triplets(create_preconditioned_convection(self.Me, self.Ke)),
            )

        self.b = create_inflow_load(
            mesh, ref, self.nq, self.velocity, self.inflow,
            dofs.bdr_dofs, remap=self.remap,
        )

    def project_nodal(self, func):
        """Interpolate func at the basis nodes (bound preserving for Bernstein)."""
        x, _ = self.mesh.transformation(self.ref.nodes())
        values = func(x.reshape(-1, self.mesh.dim))
        return np.asarray(values, dtype=float).reshape(self.ndofs)

    def evaluate(self, u, nq=None):
        """
        Evaluate a discrete field at element quadrature points.

        Returns:
            x: Physical points, (ne, nq**dim, dim).
            values: Field values, (ne, nq**dim).
            weights: Quadrature weight times |det J|, (ne, nq**dim).
        """
        pts, w = tensor_quadrature(nq or self.nq, self.mesh.dim)
        shape = self.ref.calc_shape(pts)
        x, detJ, _ = element_geometry(self.mesh, pts)
        U = np.asarray(u).reshape(self.mesh.num_elements, self.ref.ndof)
        return x, U @ shape, w * detJ
