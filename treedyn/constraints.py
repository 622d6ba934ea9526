import enum
import logging

import jax.numpy as jnp

from .errors import ConvergenceError
from .utils.spatial import Transform, as_transform, transform_multiply, vee

logger = logging.getLogger(__name__)


class ConstraintType(enum.IntEnum):
    COINCIDENT_STATIONS = 0  # a point on one body stays on a point of another
    WELD = 1                 # two frames stay aligned and coincident
    CONSTANT_DISTANCE = 2    # two points stay a fixed distance apart


def constraint_multiplier_count(constraint_type):
    """Number of scalar equations (and Lagrange multipliers) of a constraint."""
    if constraint_type == ConstraintType.COINCIDENT_STATIONS:
        return 3
    if constraint_type == ConstraintType.WELD:
        return 6
    if constraint_type == ConstraintType.CONSTANT_DISTANCE:
        return 1
    raise ValueError(f"Unknown constraint type {constraint_type}")


class Constraint(object):
    r"""A holonomic constraint between a frame fixed on body `body_a` and a
    frame fixed on body `body_b`.

    Stations are stored as translation-only frames, so every constraint type
    reads its geometry the same way.
    """

    def __init__(self, constraint_type, body_a, frame_a, body_b, frame_b, distance=None):
        self.constraint_type = ConstraintType(constraint_type)
        self.body_a = body_a
        self.body_b = body_b
        self.frame_a = as_transform(frame_a, "frame_a")
        self.frame_b = as_transform(frame_b, "frame_b")
        if self.constraint_type == ConstraintType.CONSTANT_DISTANCE:
            if distance is None or distance <= 0.0:
                raise ValueError(f"distance must be positive! Got: {distance}")
            distance = float(distance)
        self.distance = distance

    @property
    def n_multipliers(self):
        return constraint_multiplier_count(self.constraint_type)

    def position_error(self, X):
        r"""Scalar position errors of the constraint.

        Args:
            X (Transform): Body poses in ground, batched over bodies.

        Returns:
            (jnp.ndarray): Errors (shape: :math:`(n_{multipliers})`); zero when the
                constraint is satisfied.
        """
        X_GA = transform_multiply(Transform(X.R[self.body_a], X.p[self.body_a]), self.frame_a)
        X_GB = transform_multiply(Transform(X.R[self.body_b], X.p[self.body_b]), self.frame_b)
        d = X_GA.p - X_GB.p

        if self.constraint_type == ConstraintType.COINCIDENT_STATIONS:
            return d

        if self.constraint_type == ConstraintType.WELD:
            R_rel = X_GA.R.T @ X_GB.R
            return jnp.concatenate([0.5 * vee(R_rel - R_rel.T), d])

        if self.constraint_type == ConstraintType.CONSTANT_DISTANCE:
            return 0.5 * (jnp.dot(d, d) - self.distance ** 2).reshape(1)

        raise ValueError(f"Unknown constraint type {self.constraint_type}")

    def __repr__(self):
        return (
            f"Constraint({self.constraint_type.name}, body_a={self.body_a}, "
            f"body_b={self.body_b})"
        )


def stack_position_errors(constraints, X):
    """Position errors of all constraints, stacked in declaration order."""
    if len(constraints) == 0:
        return jnp.zeros(0)
    return jnp.concatenate([c.position_error(X) for c in constraints])


def max_abs(errors):
    if errors.shape[0] == 0:
        return 0.0
    return float(jnp.max(jnp.abs(errors)))


def enforce_positions(solver, q, tolerance, max_iterations):
    r"""Newton iterations driving the position errors below `tolerance`.

    Each iteration takes the minimum-norm step
    :math:`q \leftarrow q - C_q^{+} c(q)`, so redundant constraints are
    tolerated as long as they are consistent.

    Args:
        solver (TreeSolver): Compiled kernels of the model.
        q (jnp.ndarray): Starting coordinates.
        tolerance (float): Largest admissible absolute error.
        max_iterations (int): Bound on the number of Newton steps.

    Returns:
        (jnp.ndarray): Coordinates satisfying the constraints.
    """
    q = solver.normalize_q(q)
    for iteration in range(max_iterations + 1):
        error = max_abs(solver.position_errors(q))
        logger.debug("Constraint iteration %d: max error %.3e", iteration, error)
        if error <= tolerance:
            return q
        if iteration == max_iterations:
            break
        q, rank = solver.newton_step(q)
        if int(rank) < solver.n_multipliers:
            logger.warning(
                "Constraint Jacobian is rank deficient (rank %d of %d equations).",
                int(rank), solver.n_multipliers,
            )
    raise ConvergenceError(
        f"Position constraints not satisfied after {max_iterations} iterations "
        f"(max error {error:.3e}, tolerance {tolerance:.1e})."
    )
