"""Problem data and error metrics for the transport/remap test cases.

The problem number selects the execution mode, the velocity field and the
initial condition:

    problem_num <  10 : transport with the velocity `problem_num % 20`
    problem_num <  20 : remap, the mesh moves with the velocity
    problem_num % 10  : initial condition

Velocity cases:
    0: translation, 1/2/4: solid body rotation, 3: twisting rotation,
    5: diagonal translation, 10-15: Taylor-Green vortex (2D/3D only).

Initial conditions:
    0/1: smooth hump (1D) or smoothed box (2D/3D), 2: sin²(πρ)sin(3φ),
    3: product of sines, 4: slotted cylinder + cone + hump,
    5: cross and rings (2D/3D only).

Key Functions:
    exec_mode_for: Execution mode (0 transport, 1 remap).
    velocity_function / u0_function / inflow_function: Vectorized data.
    compute_lp_error: L1 and L-infinity error against an exact solution.
    compute_mass: Lumped mass of a discrete field.

Note:
    All data functions take points of shape (npts, dim) and map them to the
    reference box [-1, 1]^dim with the mesh bounding box (bb_min, bb_max).
"""
import numpy as np
from scipy.special import erfc

from ..errors import ConfigurationError


def exec_mode_for(problem_num):
    """0 for transport (problem < 10), 1 for remap (problem < 20)."""
    if problem_num < 10:
        return 0
    if problem_num < 20:
        return 1
    raise ConfigurationError(f"Unspecified execution mode for problem {problem_num}")


def map_to_reference(x, bb_min, bb_max):
    """Map points of the bounding box to [-1, 1]^dim."""
    bb_min = np.asarray(bb_min, dtype=float)
    bb_max = np.asarray(bb_max, dtype=float)
    center = 0.5 * (bb_min + bb_max)
    return 2.0 * (np.atleast_2d(x) - center) / (bb_max - bb_min)


def velocity_function(x, problem_num, bb_min, bb_max):
    """
    Velocity field of the problem.

    Args:
        x: Points, shape (npts, dim).
        problem_num: Problem number.
        bb_min, bb_max: Mesh bounding box.

    Returns:
        Velocities, shape (npts, dim).

    Raises:
        ConfigurationError: Unknown velocity case, or Taylor-Green in 1D.
    """
    X = map_to_reference(x, bb_min, bb_max)
    npts, dim = X.shape
    v = np.zeros((npts, dim))
    case = problem_num % 20

    if case == 0:
        # Translations in 1D, 2D, and 3D
        direction = {
            1: [1.0],
            2: [np.sqrt(2./3.), np.sqrt(1./3.)],
            3: [np.sqrt(3./6.), np.sqrt(2./6.), np.sqrt(1./6.)],
        }[dim]
        v[:] = direction
    elif case in (1, 2, 4):
        # Clockwise rotation around the origin
        w = np.pi/2
        if dim == 1:
            v[:, 0] = 1.0
        else:
            v[:, 0] = -w*X[:, 1]
            v[:, 1] = w*X[:, 0]
    elif case == 3:
        # Clockwise twisting rotation around the origin
        w = np.pi/2
        if dim == 1:
            v[:, 0] = 1.0
        else:
            d = (np.maximum((X[:, 0]+1.)*(1.-X[:, 0]), 0.)
                 * np.maximum((X[:, 1]+1.)*(1.-X[:, 1]), 0.))
            d = d*d
            v[:, 0] = d*w*X[:, 1]
            v[:, 1] = -d*w*X[:, 0]
    elif case == 5:
        v[:] = 1.0
    elif 10 <= case <= 15:
        if dim == 1:
            raise ConfigurationError("Taylor-Green velocity is not available in 1D")
        # Taylor-Green vortex on [0, 1]^dim
        Y = 0.5*X + 0.5
        v[:, 0] = np.sin(np.pi*Y[:, 0]) * np.cos(np.pi*Y[:, 1])
        v[:, 1] = -np.cos(np.pi*Y[:, 0]) * np.sin(np.pi*Y[:, 1])
        if dim == 3:
            v[:, 0] *= np.cos(np.pi*Y[:, 2])
            v[:, 1] *= np.cos(np.pi*Y[:, 2])
    else:
        raise ConfigurationError(f"Unspecified velocity for problem {problem_num}")

    return v


def _box(p1, p2, theta, origin, x, y):
    # Indicator of a rectangle rotated by theta degrees around origin
    s = np.sin(theta*np.pi/180)
    c = np.cos(theta*np.pi/180)
    xn = c*(x-origin[0]) - s*(y-origin[1]) + origin[0]
    yn = s*(x-origin[0]) + c*(y-origin[1]) + origin[1]
    return ((xn > p1[0]) & (xn < p2[0]) & (yn > p1[1]) & (yn < p2[1])).astype(float)


def _box3d(lo, hi, theta, origin, y):
    inside = _box(lo[:2], hi[:2], theta, origin, y[:, 0], y[:, 1])
    return inside * ((y[:, 2] > lo[2]) & (y[:, 2] < hi[2]))


def _cross(rect1, rect2):
    # Union of two indicators
    return rect1 + rect2 - rect1*rect2


def _ring(rin, rout, center, y):
    r = np.linalg.norm(y - np.asarray(center, dtype=float), axis=1)
    return ((r > rin) & (r < rout)).astype(float)


def u0_function(x, problem_num, bb_min, bb_max):
    """
    Initial condition of the problem.

    Args:
        x: Points, shape (npts, dim).
        problem_num: Problem number.
        bb_min, bb_max: Mesh bounding box.

    Returns:
        Values, shape (npts,).

    Raises:
        ConfigurationError: Unknown case, or a 2D/3D-only case in 1D.
    """
    x = np.atleast_2d(x)
    X = map_to_reference(x, bb_min, bb_max)
    dim = X.shape[1]
    case = problem_num % 10

    if dim == 1 and case in (2, 3, 4, 5):
        raise ConfigurationError(f"Initial condition {case} is not supported in 1D")

    if case in (0, 1):
        if dim == 1:
            return np.exp(-40.*(X[:, 0]-0.5)**2)
        rx, ry, cx, cy, w = 0.45, 0.25, 0., -0.2, 10.
        if dim == 3:
            s = 1. + 0.25*np.cos(2*np.pi*X[:, 2])
            rx = rx*s
            ry = ry*s
        return (erfc(w*(X[:, 0]-cx-rx))*erfc(-w*(X[:, 0]-cx+rx))
                * erfc(w*(X[:, 1]-cy-ry))*erfc(-w*(X[:, 1]-cy+ry)))/16

    if case == 2:
        rho = np.hypot(X[:, 0], X[:, 1])
        phi = np.arctan2(X[:, 1], X[:, 0])
        return np.sin(np.pi*rho)**2 * np.sin(3*phi)

    if case == 3:
        f = np.pi
        return .5*(np.sin(f*X[:, 0])*np.sin(f*X[:, 1]) + 1.)

    if case == 4:
        # Slotted cylinder, cone and hump of the solid body rotation test
        scale = 0.0225
        coef = 0.5/np.sqrt(scale)
        x0, x1 = X[:, 0], X[:, 1]
        slit = (x0 <= -0.05) | (x0 >= 0.05) | (x1 >= 0.7)
        cone = coef*np.sqrt(x0**2 + (x1+0.5)**2)
        hump = coef*np.sqrt((x0+0.5)**2 + x1**2)

        cylinder = slit & (x0**2 + (x1-.5)**2 <= 4.*scale)
        others = ((1. - cone)*(x0**2 + (x1+.5)**2 <= 4.*scale)
                  + .25*(1. + np.cos(np.pi*hump))*((x0+.5)**2 + x1**2 <= 4.*scale))
        return np.where(cylinder, 1.0, others)

    if case == 5:
        y = 50.*(x + 1.)
        if dim == 2:
            origin = (15.5, 11.5)
            rect1 = _box((14., 3.), (17., 26.), -45., origin, y[:, 0], y[:, 1])
            rect2 = _box((7., 10.), (32., 13.), -45., origin, y[:, 0], y[:, 1])
            ring1 = _ring(7., 10., (40., 40.), y)
            ring2 = _ring(3., 7., (40., 20.), y)
            return _cross(rect1, rect2) + ring1 + ring2

        origin = (15.5, 11.5)
        rect1 = _box3d((7., 10., 10.), (32., 13., 13.), -45., origin, y)
        rect2 = _box3d((14., 3., 10.), (17., 26., 13.), -45., origin, y)
        rect3 = _box3d((14., 10., 3.), (17., 13., 26.), -45., origin, y)
        c1, c2 = (40., 40., 40.), (40., 20., 20.)
        dom2 = (_cross(_cross(rect1, rect2), rect3)
                + _ring(7., 10., c1, y) + _ring(3., 7., c2, y))

        rect1 = _box3d((2., 30., 30.), (27., 33., 33.), 0., (0., 0.), y)
        rect2 = _box3d((9., 23., 30.), (12., 46., 33.), 0., (0., 0.), y)
        rect3 = _box3d((9., 30., 23.), (12., 33., 46.), 0., (0., 0.), y)
        dom3 = (_cross(_cross(rect1, rect2), rect3) + _ring(0., 7., c1, y)
                + _ring(0., 3., c2, y) + _ring(7., 10., c2, y))

        dom1 = 1. - _cross(dom2, dom3)
        return dom1 + 2.*dom2 + 3.*dom3

    raise ConfigurationError(f"Unspecified initial condition for problem {problem_num}")


def inflow_function(x, problem_num=None, bb_min=None, bb_max=None):
    """Inflow boundary data; zero for every problem."""
    return np.zeros(len(np.atleast_2d(x)))


# =============================================================================
# Error Metrics
# =============================================================================

def compute_lp_error(disc, u, func):
    """
    L1 and L-infinity errors of a discrete field against func.

    Both norms are evaluated at the element quadrature points of the
    discretization.

    Args:
        disc: Discretization providing the quadrature and the basis.
        u: Dof values.
        func: Exact solution, points (npts, dim) -> values (npts,).

    Returns:
        Tuple (l1_error, linf_error).
    """
    x, values, weights = disc.evaluate(u)
    exact = np.asarray(func(x.reshape(-1, x.shape[-1])), dtype=float).reshape(values.shape)
    err = np.abs(values - exact)
    return float(np.sum(weights * err)), float(np.max(err))


def compute_mass(lumped_mass, u):
    """Total mass Σ_i m_i u_i with the lumped mass."""
    return float(np.dot(lumped_mass, u))
