import jax.numpy as jnp

from .utils.defaults import Defaults


def gravity_vector(magnitude=None, direction=None):
    r"""Uniform gravitational acceleration in ground.

    Args:
        magnitude (float): Magnitude of the acceleration (default: the norm of
            `Defaults.GRAVITY`).
        direction (array-like): Direction, need not be normalized (default:
            the direction of `Defaults.GRAVITY`).

    Returns:
        (jnp.ndarray): Acceleration vector (shape: :math:`(3)`).
    """
    default = jnp.asarray(Defaults.GRAVITY, dtype=jnp.float64)
    if direction is None:
        direction = default
    direction = jnp.asarray(direction, dtype=jnp.float64)
    direction = direction / jnp.linalg.norm(direction)
    if magnitude is None:
        magnitude = jnp.linalg.norm(default)
    return magnitude * direction


def gravity_body_forces(masses, coms, rotations, gravity):
    r"""Spatial forces of uniform gravity on every body.

    Each body receives the force :math:`m g` at its center of mass, expressed
    about the body origin: moment :math:`(R c) \times m g`, force :math:`m g`.

    Args:
        masses (jnp.ndarray): Body masses (shape: :math:`(B)`).
        coms (jnp.ndarray): Centers of mass in body frames (shape: :math:`(B, 3)`).
        rotations (jnp.ndarray): Body orientations in ground (shape: :math:`(B, 3, 3)`).
        gravity (jnp.ndarray): Gravitational acceleration in ground (shape: :math:`(3)`).

    Returns:
        (jnp.ndarray): Spatial forces (shape: :math:`(B, 6)`).
    """
    c = jnp.einsum("bij,bj->bi", rotations, coms)
    f = masses[:, None] * jnp.asarray(gravity)[None, :]
    return jnp.concatenate([jnp.cross(c, f), f], axis=-1)


def point_force_to_spatial(rotation, station, force):
    r"""Spatial force, about the body origin, of `force` (in ground) applied at
    `station` (in the body frame)."""
    r = rotation @ jnp.asarray(station, dtype=jnp.float64)
    force = jnp.asarray(force, dtype=jnp.float64)
    return jnp.concatenate([jnp.cross(r, force), force])


def body_torque_to_spatial(torque):
    """A pure moment (in ground) as a spatial force."""
    return jnp.concatenate([jnp.asarray(torque, dtype=jnp.float64), jnp.zeros(3)])
