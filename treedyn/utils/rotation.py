import jax.numpy as jnp


def rotmat_about_x(angle):
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rotmat_about_y(angle):
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rotmat_about_z(angle):
    c, s = jnp.cos(angle), jnp.sin(angle)
    return jnp.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def body_fixed_123_to_rotmat(angles):
    r"""Rotation matrix for a body-fixed 1-2-3 (X, then new Y, then new Z)
    sequence, :math:`R = R_x(a) R_y(b) R_z(c)`.

    Args:
        angles (jnp.ndarray): The three angles :math:`(a, b, c)` (shape: :math:`(3)`).

    Returns:
        (jnp.ndarray): Rotation matrix (shape: :math:`(3, 3)`).
    """
    return rotmat_about_x(angles[0]) @ rotmat_about_y(angles[1]) @ rotmat_about_z(angles[2])


def body_fixed_123_rate_matrix(angles):
    r"""Matrix :math:`E` mapping body-fixed 1-2-3 angle rates to the angular
    velocity expressed in the outer (parent) frame, :math:`\omega = E \dot{\theta}`.

    Singular when :math:`\cos b = 0`.
    """
    ca, sa = jnp.cos(angles[0]), jnp.sin(angles[0])
    cb, sb = jnp.cos(angles[1]), jnp.sin(angles[1])
    return jnp.array([
        [1.0, 0.0, sb],
        [0.0, ca, -sa * cb],
        [0.0, sa, ca * cb],
    ])
