"""Explicit Runge-Kutta integrators for the evolution operator.

Every solver drives an operator exposing set_time(t) and mult(x) -> dx/dt.
set_time is called before each stage so that time-dependent operators (the
moving mesh of the remap mode) are evaluated at the stage time.

Solver codes:
    1 - Forward Euler
    2 - RK2 (a = 1, Heun)
    3 - SSP RK3 (Shu-Osher)
    4 - classical RK4
    5 - 5-stage low-storage RK4 (Carpenter-Kennedy)
    6 - 7-stage RK6 (Butcher)
"""
import numpy as np

from ..errors import ConfigurationError


class ODESolver:
    """Base class: bind an operator with init(), then call step()."""

    def __init__(self):
        self.op = None

    def init(self, op):
        self.op = op

    def _rate(self, x, t):
        self.op.set_time(t)
        return self.op.mult(x)

    def step(self, x, t, dt):
        """Advance x from t to t + dt; returns (x_new, t + dt)."""
        raise NotImplementedError


class ForwardEulerSolver(ODESolver):

    def step(self, x, t, dt):
        return x + dt * self._rate(x, t), t + dt


class RK2Solver(ODESolver):
    """Two-stage second-order scheme with parameter a (a = 1 is Heun)."""

    def __init__(self, a=1.0):
        super().__init__()
        self.a = a

    def step(self, x, t, dt):
        b = 1.0 / (2.0 * self.a)
        k1 = self._rate(x, t)
        k2 = self._rate(x + self.a * dt * k1, t + self.a * dt)
        return x + dt * ((1.0 - b) * k1 + b * k2), t + dt


class RK3SSPSolver(ODESolver):
    """Strong-stability-preserving third-order scheme."""

    def step(self, x, t, dt):
        y = x + dt * self._rate(x, t)
        y = 0.75 * x + 0.25 * (y + dt * self._rate(y, t + dt))
        x_new = x / 3.0 + 2.0 / 3.0 * (y + dt * self._rate(y, t + 0.5 * dt))
        return x_new, t + dt


class RK4Solver(ODESolver):

    def step(self, x, t, dt):
        k1 = self._rate(x, t)
        k2 = self._rate(x + 0.5 * dt * k1, t + 0.5 * dt)
        k3 = self._rate(x + 0.5 * dt * k2, t + 0.5 * dt)
        k4 = self._rate(x + dt * k3, t + dt)
        return x + dt / 6.0 * (k1 + 2.0 * k2 + 2.0 * k3 + k4), t + dt


class LowStorageRK4Solver(ODESolver):
    """
    Five-stage, fourth-order low-storage Runge-Kutta scheme.

    Requires only 2N storage (solution + increment) rather than the usual
    storage of the stage rates.
    """

    # Low-storage RK coefficients (Carpenter-Kennedy 4th order)
    RKA = np.array([
        0.0,
        -567301805773.0/1357537059087.0,
        -2404267990393.0/2016746695238.0,
        -3550918686646.0/2091501179385.0,
        -1275806237668.0/842570457699.0
    ])

    RKB = np.array([
        1432997174477.0/9575080441755.0,
        5161836677717.0/13612068292357.0,
        1720146321549.0/2090206949498.0,
        3134564353537.0/4481467310338.0,
        2277821191437.0/14882151754819.0
    ])

    RKC = np.array([
        0.0,
        1432997174477.0/9575080441755.0,
        2526269341429.0/6820363962896.0,
        2006345519317.0/3224310063776.0,
        2802321613138.0/2924317926251.0
    ])

    def step(self, x, t, dt):
        dq = np.zeros_like(x)
        qp = x.copy()

        # RK stages
        for s in range(len(self.RKA)):
            R = self._rate(qp, t + self.RKC[s] * dt)
            dq = self.RKA[s] * dq + dt * R
            qp = qp + self.RKB[s] * dq

        return qp, t + dt


class RK6Solver(ODESolver):
    """
    Seven-stage, sixth-order explicit Runge-Kutta scheme (Butcher, 1964).

    Stages are taken from the lower-triangular tableau A with weights B at
    the stage times t + C * dt.
    """

    A = [
        [],
        [1.0/3.0],
        [0.0, 2.0/3.0],
        [1.0/12.0, 1.0/3.0, -1.0/12.0],
        [-1.0/16.0, 9.0/8.0, -3.0/16.0, -3.0/8.0],
        [0.0, 9.0/8.0, -3.0/8.0, -3.0/4.0, 1.0/2.0],
        [9.0/44.0, -9.0/11.0, 63.0/44.0, 18.0/11.0, 0.0, -16.0/11.0],
    ]

    B = np.array([11.0/120.0, 0.0, 27.0/40.0, 27.0/40.0,
                  -4.0/15.0, -4.0/15.0, 11.0/120.0])

    C = np.array([0.0, 1.0/3.0, 2.0/3.0, 1.0/3.0, 1.0/2.0, 1.0/2.0, 1.0])

    def step(self, x, t, dt):
        k = []
        for s, row in enumerate(self.A):
            xs = x.copy()
            for a, ks in zip(row, k):
                if a != 0.0:
                    xs += dt * a * ks
            k.append(self._rate(xs, t + self.C[s] * dt))

        x_new = x.copy()
        for b, ks in zip(self.B, k):
            if b != 0.0:
                x_new += dt * b * ks
        return x_new, t + dt


ODE_SOLVERS = {
    1: ForwardEulerSolver,
    2: RK2Solver,
    3: RK3SSPSolver,
    4: RK4Solver,
    5: LowStorageRK4Solver,
    6: RK6Solver,
}


def create_ode_solver(ode_solver_type):
    """Instantiate the integrator with the given code."""
    try:
        return ODE_SOLVERS[int(ode_solver_type)]()
    except KeyError:
        raise ConfigurationError(f"Unknown ODE solver type: {ode_solver_type}") from None
