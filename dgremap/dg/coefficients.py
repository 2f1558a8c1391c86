"""Velocity coefficients evaluated at element quadrature points.

The transport mode advects with an analytic velocity field; the remap mode
moves the mesh with a velocity stored at the mesh vertices and interpolated
with the multilinear element map. Both expose the same batched interface so
the operator assembly does not need to know which one it got.
"""
import numpy as np

from ..grid.mesh import corner_shape


class FunctionCoefficient:
    """Vector field given by a function of physical position.

    Args:
        func: Callable mapping points (npts, dim) to vectors (npts, dim).
    """

    def __init__(self, func):
        self.func = func

    def eval(self, mesh, pts, x):
        """Velocity at physical points x (ne, npts, dim)."""
        ne, npts, dim = x.shape
        return np.asarray(self.func(x.reshape(-1, dim)), dtype=float).reshape(ne, npts, dim)


class VertexVelocityCoefficient:
    """Vector field with one value per mesh vertex (Q1 interpolation).

    Args:
        values: Vertex velocities, shape (nv, dim).
    """

    def __init__(self, values):
        self.values = np.asarray(values, dtype=float)

    def eval(self, mesh, pts, x):
        """Velocity at reference points pts of every element."""
        N, _ = corner_shape(pts)
        V = self.values[mesh.element_vertices]
        return np.einsum('cq,ecd->eqd', N, V)
