import jax

# Constraint tolerances near 1e-10 need double precision.
jax.config.update("jax_enable_x64", True)

from .bodies import Body, MassProperties, point_mass_inertia  # noqa: E402
from .constraints import Constraint, ConstraintType  # noqa: E402
from .dynamics import Configuration, Dynamics, Motion, TreeSolver  # noqa: E402
from .errors import (  # noqa: E402
    ConvergenceError,
    MultibodyError,
    NotRealizedError,
    OrderingError,
    SingularCoordinatesError,
    SingularMassMatrixError,
    StageError,
    TopologyError,
)
from .joints import JointType  # noqa: E402
from .models import Pendulum  # noqa: E402
from .stage import Stage  # noqa: E402
from .state import State  # noqa: E402
from .subsystem import MultibodySubsystem  # noqa: E402
from .topology import Topology  # noqa: E402
from .utils.spatial import Transform, transform  # noqa: E402
