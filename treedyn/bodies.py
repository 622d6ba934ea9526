import jax.numpy as jnp

from .joints import JointType
from .utils.asserts import as_array
from .utils.spatial import as_transform, transform_inverse


class MassProperties(object):
    r"""Mass distribution of a rigid body, in its body frame.

    The inertia tensor is taken about the body origin (not about the center of
    mass), which is the convention the dynamics recursions work in.
    """

    def __init__(self, mass, com=None, inertia=None):
        r"""
        Args:
            mass (float): Total mass (kg); must be non-negative.
            com (array-like): Center of mass in the body frame (shape: :math:`(3)`)
                (default: origin).
            inertia (array-like): Inertia about the body origin, either a full
                symmetric :math:`3 \times 3` tensor or its three principal moments
                (default: zero).
        """
        mass = float(mass)
        if mass < 0.0:
            raise ValueError(f"mass cannot be negative! Got: {mass}")
        if com is None:
            com = jnp.zeros(3)
        if inertia is None:
            inertia = jnp.zeros((3, 3))
        inertia = jnp.asarray(inertia, dtype=jnp.float64)
        if inertia.shape == (3,):
            inertia = jnp.diag(inertia)
        inertia = as_array(inertia, (3, 3), "inertia")
        if not jnp.allclose(inertia, inertia.T):
            raise ValueError("inertia must be a symmetric matrix.")

        self.mass = mass
        self.com = as_array(com, (3,), "com")
        self.inertia = inertia

    @staticmethod
    def compute_inertia_body(points, masses):
        r"""Compute the inertia, about the body origin, of a collection of point
        masses.

        For :math:`N` particles of mass :math:`m_i` at positions :math:`r_i`
        (relative to the body origin), the inertia tensor is
        :math:`I = \sum_{i=1}^{N} m_i ((r_i^T r_i) \mathbf{1}_3 - r_i r_i^T)`.

        Args:
            points (jnp.ndarray): Particle positions (shape: :math:`(N, 3)`).
            masses (jnp.ndarray): Mass of each particle (shape: :math:`(N)`).

        Returns:
            (jnp.ndarray): Inertia tensor (shape: :math:`(3, 3)`).
        """
        points = jnp.asarray(points, dtype=jnp.float64).reshape(-1, 3)
        masses = jnp.asarray(masses, dtype=jnp.float64).reshape(-1)
        N = points.shape[0]
        # rt_r: (N, 1, 1)
        rt_r = jnp.matmul(points.reshape(-1, 1, 3), points.reshape(-1, 3, 1))
        # r_rt: (N, 3, 3)
        r_rt = jnp.matmul(points.reshape(-1, 3, 1), points.reshape(-1, 1, 3))
        eye = jnp.eye(3, dtype=points.dtype)
        return ((rt_r * jnp.tile(eye, (N, 1, 1)) - r_rt) * masses.reshape(N, 1, 1)).sum(0)

    @classmethod
    def from_point_masses(cls, points, masses):
        """Mass properties of rigidly connected point masses."""
        points = jnp.asarray(points, dtype=jnp.float64).reshape(-1, 3)
        masses = jnp.asarray(masses, dtype=jnp.float64).reshape(-1)
        total = float(masses.sum())
        com = (masses.reshape(-1, 1) * points).sum(0) / total if total > 0.0 else jnp.zeros(3)
        return cls(total, com, cls.compute_inertia_body(points, masses))

    def inertia_about_com(self):
        """Inertia about the center of mass, in the body frame."""
        c = self.com
        return self.inertia - self.mass * (jnp.dot(c, c) * jnp.eye(3) - jnp.outer(c, c))


def point_mass_inertia(point, mass):
    """Inertia about the origin of a single point mass."""
    return MassProperties.compute_inertia_body(jnp.asarray(point).reshape(1, 3), jnp.array([mass]))


class Body(object):
    """A node of the multibody tree: a rigid body plus the joint connecting it
    to its parent. Immutable once added to a topology."""

    def __init__(
        self,
        index,
        mass_properties,
        joint_frame_on_body,
        parent,
        joint_frame_on_parent,
        joint_type,
    ):
        self.index = index
        self.mass_properties = mass_properties
        self.parent = parent
        self.joint_type = JointType(joint_type)
        # X_BJ: joint frame J fixed on this body; X_PJb: its mate fixed on the parent.
        self.joint_frame_on_body = as_transform(joint_frame_on_body, "joint_frame_on_body")
        self.joint_frame_on_parent = as_transform(joint_frame_on_parent, "joint_frame_on_parent")
        self.body_frame_on_joint = transform_inverse(self.joint_frame_on_body)

    def __repr__(self):
        return (
            f"Body(index={self.index}, parent={self.parent}, joint={self.joint_type.name}, "
            f"mass={self.mass_properties.mass})"
        )
