class Defaults:
    """Default values used throughout treedyn."""

    # Constraint enforcement: largest admissible scalar position error, and
    # the bound on Newton iterations before giving up.
    CONSTRAINT_TOLERANCE = 1e-10
    MAX_CONSTRAINT_ITERATIONS = 50

    # An articulated joint inertia whose smallest eigenvalue falls below this
    # fraction of its largest (or of 1.0) is treated as singular.
    SINGULAR_TOLERANCE = 1e-13

    # Ground frame gravity (m / s^2); -Y is down.
    GRAVITY = (0.0, -9.8, 0.0)

    # Relative cutoff on singular values in the least-squares solves of the
    # constraint layer; smaller ones are treated as redundant directions.
    RANK_TOLERANCE = 1e-12

    # Body-fixed 1-2-3 angles cannot represent every angular velocity when
    # the middle angle is near +-pi/2; |cos b| below this is rejected.
    EULER_SINGULAR_TOLERANCE = 1e-8
