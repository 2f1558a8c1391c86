"""Plots of discrete solutions sampled at element quadrature points."""
import matplotlib.pyplot as plt

from .errors import ConfigurationError


def plot_solution(solver, path, title=None, nq=None):
    """
    Save a plot of the current solution of a RemapSolver.

    1D fields are drawn element by element so jumps across faces stay
    visible. 2D fields are drawn as a filled triangulation of the sample
    points.

    Args:
        solver: RemapSolver (or anything with disc, u, mesh, time).
        path: Output image file.
        title: Plot title. Defaults to the current time.
        nq: Sample points per axis (default order + 2).

    Raises:
        ConfigurationError: For 3D meshes.
    """
    dim = solver.mesh.dim
    if dim == 3:
        raise ConfigurationError("Plotting supports 1D and 2D meshes only")

    x, values, _ = solver.disc.evaluate(solver.u, nq)

    plt.figure(figsize=(10, 6) if dim == 1 else (8, 7))
    if dim == 1:
        for xe, ue in zip(x[:, :, 0], values):
            plt.plot(xe, ue, 'b-', linewidth=1.5)
        plt.xlabel('x')
        plt.ylabel('u')
        plt.grid(True, alpha=0.3)
    else:
        pts = x.reshape(-1, 2)
        plt.tripcolor(pts[:, 0], pts[:, 1], values.ravel(), shading='gouraud', cmap='viridis')
        plt.colorbar(label='u')
        plt.gca().set_aspect('equal')
        plt.xlabel('x')
        plt.ylabel('y')

    plt.title(title if title is not None else f"t = {solver.time:g}")
    plt.tight_layout()
    plt.savefig(path, bbox_inches='tight')
    plt.close()
