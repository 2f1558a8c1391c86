"""Monotonicity treatments and the checks that pick one.

The integer codes follow the command-line convention:

    0 - no monotonicity treatment (high-order scheme only)
    1 - discrete upwinding, low order
    2 - discrete upwinding, FCT
    3 - residual distribution, low order
    4 - residual distribution, FCT

Instead of testing code parity at every evaluation, the code is resolved once
into a Scheme (which updates are computed) and a LowOrderKind (which low-order
method is used).
"""
import warnings
from dataclasses import dataclass
from enum import Enum, IntEnum

from ..errors import ConfigurationError


class MonotonicityMode(IntEnum):
    NONE = 0
    DISCRETE_UPWIND = 1
    DISCRETE_UPWIND_FCT = 2
    RESIDUAL_DISTRIBUTION = 3
    RESIDUAL_DISTRIBUTION_FCT = 4


class Scheme(Enum):
    HIGH_ORDER_ONLY = 'high_order'
    LOW_ORDER_ONLY = 'low_order'
    BLENDED = 'fct'


class LowOrderKind(Enum):
    UPWIND = 'discrete_upwinding'
    RESIDUAL_DISTRIBUTION = 'residual_distribution'


@dataclass(frozen=True)
class LowOrderMethod:
    """
    Resolved monotonicity treatment.

    Attributes:
        mode: Requested treatment.
        optimized: Use the optimized low-order variant (preconditioned
            discrete upwinding, or residual distribution with subcells).
    """
    mode: MonotonicityMode
    optimized: bool = False

    @property
    def scheme(self):
        if self.mode == MonotonicityMode.NONE:
            return Scheme.HIGH_ORDER_ONLY
        if self.mode in (MonotonicityMode.DISCRETE_UPWIND,
                         MonotonicityMode.RESIDUAL_DISTRIBUTION):
            return Scheme.LOW_ORDER_ONLY
        return Scheme.BLENDED

    @property
    def low_order_kind(self):
        if self.mode in (MonotonicityMode.DISCRETE_UPWIND,
                         MonotonicityMode.DISCRETE_UPWIND_FCT):
            return LowOrderKind.UPWIND
        if self.mode in (MonotonicityMode.RESIDUAL_DISTRIBUTION,
                         MonotonicityMode.RESIDUAL_DISTRIBUTION_FCT):
            return LowOrderKind.RESIDUAL_DISTRIBUTION
        return None

    @property
    def faces_in_operator(self):
        """Basic discrete upwinding keeps the face terms inside K."""
        return self.low_order_kind == LowOrderKind.UPWIND and not self.optimized

    @property
    def need_bdr(self):
        """Whether the face stencils bdrInt are needed (flux lumping)."""
        return not self.faces_in_operator

    @property
    def need_subcells(self):
        return self.optimized and self.low_order_kind == LowOrderKind.RESIDUAL_DISTRIBUTION

    @property
    def preconditioned(self):
        """Optimized discrete upwinding acts on M_L M^{-1} K element-wise."""
        return self.optimized and self.low_order_kind == LowOrderKind.UPWIND


def validate_configuration(mono_type, opt_scheme, order, basis_type='bernstein'):
    """
    Check a monotonicity setting and resolve it into a LowOrderMethod.

    Args:
        mono_type: Integer monotonicity code (0-4).
        opt_scheme: Request the optimized low-order variant.
        order: Polynomial order.
        basis_type: Name of the finite element basis.

    Returns:
        LowOrderMethod after the adjustments below.

    Raises:
        ConfigurationError: Unknown code, or monotonicity requested with a
            basis that is not Bernstein.

    Note:
        Order 0 switches the treatment off and the subcell scheme is switched
        off for residual distribution at order 1 (a single subcell equals the
        element). Both adjustments emit a RuntimeWarning.
    """
    try:
        mode = MonotonicityMode(int(mono_type))
    except ValueError:
        raise ConfigurationError(
            f"Unsupported option for monotonicity treatment: {mono_type}"
        ) from None

    optimized = bool(opt_scheme)

    if mode != MonotonicityMode.NONE and basis_type != 'bernstein':
        raise ConfigurationError(
            "Monotonicity treatment requires use of Bernstein basis."
        )

    if order == 0 and mode != MonotonicityMode.NONE:
        warnings.warn(
            "For order 0, no monotonicity treatment is needed. "
            "Disabling monotonicity treatment.",
            RuntimeWarning,
        )
        mode = MonotonicityMode.NONE
        optimized = False

    if mode == MonotonicityMode.NONE:
        optimized = False

    if (mode in (MonotonicityMode.RESIDUAL_DISTRIBUTION,
                 MonotonicityMode.RESIDUAL_DISTRIBUTION_FCT)
            and order == 1 and optimized):
        warnings.warn(
            "Subcell residual distribution does not make sense for order 1. "
            "Disabling the optimized scheme.",
            RuntimeWarning,
        )
        optimized = False

    return LowOrderMethod(mode=mode, optimized=optimized)
