import math

import jax.numpy as jnp

from .bodies import MassProperties, point_mass_inertia
from .forces import gravity_vector
from .joints import JointType
from .stage import Stage
from .state import State
from .subsystem import MultibodySubsystem


class Pendulum(object):
    r"""A pendulum hung from ground, built as a one-body multibody model.

    The bob is a small sphere of mass :math:`m` at distance :math:`L` from the
    pivot. The body origin sits halfway between pivot and bob, with the body
    X axis pointing from pivot to bob. The joint frame on the body is at
    :math:`(-L/2, 0, 0)`, i.e. at the pivot, and coincides with ground's
    origin in the reference configuration.

    With a `FREE` joint the pivot is held by a coincident-station constraint
    between ground's origin and the joint station on the body (`pinned`);
    with a `PIN` joint the tree alone keeps it in place.

    Rotation about Z measures the swing: the pendulum hangs straight down
    (along -Y) when that angle is :math:`-\pi / 2`.
    """

    def __init__(
        self,
        length=None,
        mass=None,
        gravity=None,
        radius=None,
        joint_type=None,
        pinned=True,
        **subsystem_kwargs,
    ):
        r"""
        Args:
            length (float): Distance between pivot and bob (m) (default: 5.0).
            mass (float): Mass of the bob (kg) (default: 3.0).
            gravity (float): Magnitude of the gravitational acceleration, along -Y
                (m / s^2) (default: 9.8).
            radius (float): Radius of the bob (m), which gives it a small
                rotational inertia (default: 0.05).
            joint_type (JointType): `FREE` or `PIN` (default: `FREE`).
            pinned (bool): Add the pivot constraint (default: True).
            subsystem_kwargs: Forwarded to `MultibodySubsystem`.
        """
        if length is None:
            length = 5.0
        if mass is None:
            mass = 3.0
        if gravity is None:
            gravity = 9.8
        if radius is None:
            radius = 0.05
        if joint_type is None:
            joint_type = JointType.FREE
        self.length = length
        self.mass = mass
        self.gravity = gravity
        self.radius = radius
        self.joint_type = JointType(joint_type)
        self.gravity_vector = gravity_vector(gravity)

        half = 0.5 * length
        com = jnp.array([half, 0.0, 0.0])
        inertia = point_mass_inertia(com, mass) + 0.4 * mass * radius ** 2 * jnp.eye(3)
        self.joint_station = jnp.array([-half, 0.0, 0.0])

        self.subsystem = MultibodySubsystem(**subsystem_kwargs)
        self.body = self.subsystem.add_rigid_body(
            MassProperties(mass, com, inertia),
            self.joint_station,
            0,
            None,
            self.joint_type,
        )
        if pinned and self.joint_type != JointType.PIN:
            self.subsystem.add_coincident_stations_constraint(
                0, jnp.zeros(3), self.body, self.joint_station
            )

    def small_oscillation_period(self):
        r"""Period of small swings, :math:`2 \pi \sqrt{I_o / (m g L)}`, with
        :math:`I_o` the inertia about the pivot."""
        inertia_pivot = self.mass * self.length ** 2 + 0.4 * self.mass * self.radius ** 2
        return 2.0 * math.pi * math.sqrt(inertia_pivot / (self.mass * self.gravity * self.length))

    def new_state(self, initial_angle=0.0, use_euler_angles=True):
        """A state realized to MODELED, with the pendulum `initial_angle`
        radians away from hanging straight down."""
        state = State()
        self.subsystem.realize(state, Stage.BUILT)
        self.subsystem.set_use_euler_angles(state, use_euler_angles)
        self.subsystem.realize(state, Stage.MODELED)
        self.set_angle(state, initial_angle)
        return state

    def set_angle(self, state, angle):
        c = angle - 0.5 * math.pi
        subsystem = self.subsystem
        if self.joint_type == JointType.PIN:
            subsystem.set_joint_q(state, self.body, 0, c)
        elif subsystem.get_use_euler_angles(state):
            subsystem.set_joint_q(state, self.body, 2, c)
        else:
            quat = (math.cos(0.5 * c), 0.0, 0.0, math.sin(0.5 * c))
            for slot, value in enumerate(quat):
                subsystem.set_joint_q(state, self.body, slot, value)

    def bob_position(self, state):
        """Center of mass of the bob in ground (needs CONFIGURED)."""
        X = self.subsystem.get_body_configuration(state, self.body)
        return X.R @ self.subsystem.get_mass_properties(self.body).com + X.p

    def step(self, state, dtime):
        r"""Advance `state` by one explicit Euler step of `dtime` seconds.

        Constraints are enforced at the start of the step, so coordinates
        written by the previous step are projected before they are used.
        """
        subsystem = self.subsystem
        subsystem.enforce_configuration_constraints(state)
        subsystem.realize(state, Stage.CONFIGURED)
        subsystem.enforce_motion_constraints(state)
        subsystem.realize(state, Stage.MOVING)

        q = subsystem.get_q(state)
        u = subsystem.get_u(state)
        qdot = subsystem.get_qdot(state)

        subsystem.clear_applied_forces(state)
        subsystem.apply_gravity(state, self.gravity_vector)
        subsystem.realize(state, Stage.REACTING)
        udot = subsystem.get_udot(state)

        subsystem.set_q(state, q + dtime * qdot)
        subsystem.set_u(state, u + dtime * udot)
