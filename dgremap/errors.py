"""Exception types raised during setup of the remap/transport solver.

Both subclass ValueError so callers that already guard solver construction
with ``except ValueError`` keep working.
"""


class TopologyError(ValueError):
    """Mesh connectivity that the dof tables cannot represent.

    Raised once at setup, e.g. when two face neighbors share more than one
    common neighbor element or a sparsity pattern is not symmetric.
    """


class ConfigurationError(ValueError):
    """Unsupported combination of discretization or problem options."""
