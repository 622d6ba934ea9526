from typing import NamedTuple

import jax.numpy as jnp

# Notation
# ========
#
# X_AB is the pose of frame B measured and expressed in frame A, so that
# X_AB * X_BC = X_AC and X_AB * p_B = p_A.
#
# Spatial vectors stack the rotational part first: a velocity is
# (angular velocity, linear velocity of a reference point) and a force is
# (moment about the reference point, force). Unless stated otherwise the
# reference point is the body origin and both parts are expressed in ground.


class Transform(NamedTuple):
    """Rigid transform: rotation matrix `R` (3, 3) and translation `p` (3)."""

    R: jnp.ndarray
    p: jnp.ndarray


def transform(p=None, R=None):
    r"""Build a transform from an optional translation and rotation matrix."""
    if p is None:
        p = jnp.zeros(3)
    if R is None:
        R = jnp.eye(3)
    return Transform(jnp.asarray(R, dtype=jnp.float64), jnp.asarray(p, dtype=jnp.float64))


def transform_identity():
    return Transform(jnp.eye(3), jnp.zeros(3))


def transform_multiply(a, b):
    return Transform(a.R @ b.R, a.R @ b.p + a.p)


def transform_inverse(t):
    Rt = t.R.T
    return Transform(Rt, -(Rt @ t.p))


def transform_point(t, point):
    return t.R @ point + t.p


def stack_transforms(transforms):
    """Stack a list of transforms into one `Transform` of batched arrays."""
    return Transform(
        jnp.stack([t.R for t in transforms]), jnp.stack([t.p for t in transforms])
    )


def as_transform(value, varname):
    r"""Coerce `value` to a `Transform`.

    `None` means identity, and a bare 3-vector is read as a pure translation
    (a station).
    """
    if value is None:
        return transform_identity()
    if isinstance(value, Transform):
        return transform(value.p, value.R)
    p = jnp.asarray(value, dtype=jnp.float64)
    if p.shape != (3,):
        raise ValueError(
            f"Expected {varname} to be a Transform or a 3-vector. Got shape {p.shape} instead."
        )
    return transform(p)


def cross_matrix(v):
    r"""Skew-symmetric matrix :math:`[v]_\times` with :math:`[v]_\times x = v \times x`."""
    return jnp.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def vee(m):
    r"""Inverse of :func:`cross_matrix` applied to the skew part of `m`."""
    return jnp.stack([m[2, 1], m[0, 2], m[1, 0]])


def spatial_shift_matrix(l):
    r"""Rigid-body shift operator :math:`\Phi(l)`.

    For a force expressed about a point at offset `l` from a new reference
    point, :math:`\Phi(l) F` is the same force about the new point. Its
    transpose shifts a rigid-body velocity the other way.
    """
    eye = jnp.eye(3)
    zero = jnp.zeros((3, 3))
    return jnp.block([[eye, cross_matrix(l)], [zero, eye]])


def spatial_shift_velocity(V, l):
    r"""Velocity (or acceleration) of the point at offset `l`, treating the
    rigid-body motion :math:`V` as known at the current reference point."""
    return jnp.concatenate([V[0:3], V[3:6] + jnp.cross(V[0:3], l)])


def spatial_shift_force(F, l):
    r"""Moves the reference point of force `F` back by `l` (the old point
    sits at offset `l` from the new one)."""
    return jnp.concatenate([F[0:3] + jnp.cross(l, F[3:6]), F[3:6]])


def spatial_inertia(mass, com, inertia):
    r"""Spatial inertia about a body origin.

    Args:
        mass (float): Body mass.
        com (jnp.ndarray): Center of mass measured from the origin (shape: :math:`(3)`).
        inertia (jnp.ndarray): Inertia about the origin (shape: :math:`(3, 3)`).

    Returns:
        (jnp.ndarray): :math:`\begin{bmatrix} I & m[c]_\times \\ -m[c]_\times & m\mathbf{1}_3 \end{bmatrix}`
            (shape: :math:`(6, 6)`).
    """
    mc = mass * cross_matrix(com)
    return jnp.block([[inertia, mc], [-mc, mass * jnp.eye(3)]])
