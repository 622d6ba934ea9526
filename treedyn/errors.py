class MultibodyError(Exception):
    """Base class of the errors raised by treedyn."""


class OrderingError(MultibodyError):
    """An operation was called outside its allowed place in the pipeline,
    e.g. allocating Q after the state is Modeled or adding a body after the
    topology is sealed."""


class StageError(MultibodyError):
    """A stage advance skipped over an unrealized stage."""


class NotRealizedError(MultibodyError):
    """A quantity was read before the stage that computes it was realized."""


class ConvergenceError(MultibodyError):
    """Position constraints could not be satisfied within the iteration bound."""


class SingularMassMatrixError(MultibodyError):
    """Forward dynamics met an articulated inertia that is not positive definite."""


class TopologyError(MultibodyError):
    """Malformed body/joint graph or constraint reference."""


class SingularCoordinatesError(MultibodyError):
    """The generalized coordinates sit at a singularity of their
    parametrization, e.g. body-fixed 1-2-3 angles with cos b = 0."""
