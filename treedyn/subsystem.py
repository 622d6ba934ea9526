import logging
from typing import NamedTuple

import jax.numpy as jnp

from .constraints import enforce_positions
from .dynamics import TreeSolver
from .errors import (
    NotRealizedError,
    OrderingError,
    SingularCoordinatesError,
    SingularMassMatrixError,
)
from .forces import body_torque_to_spatial, point_force_to_spatial
from .stage import Stage
from .topology import Topology
from .utils.asserts import as_array
from .utils.defaults import Defaults
from .utils.spatial import Transform

logger = logging.getLogger(__name__)


class _Allocation(object):
    """Per-state bookkeeping created when a state first reaches BUILT. Kept
    as the state's allocation record, so it outlives invalidation."""

    def __init__(self, use_euler_index):
        self.use_euler_index = use_euler_index
        self.model = None


class _Model(NamedTuple):
    solver: TreeSolver
    q_start: int
    u_start: int
    body_forces_index: int
    joint_forces_index: int


_MODEL = "treedyn.model"
_CONFIGURED = "treedyn.configured"
_MOVING = "treedyn.moving"
_DYNAMICS = "treedyn.dynamics"
_REACTING = "treedyn.reacting"


class MultibodySubsystem(Topology):
    r"""A multibody tree with constraints, driven through the stages of a
    `State`.

    Build the topology with the `add_*` methods, then call
    :meth:`realize` with increasing stages. Everything a stage computes is
    stored in the state's cache and read back through the `get_*`
    accessors, which raise `NotRealizedError` when the state has not
    reached the stage they need.
    """

    def __init__(self, constraint_tolerance=None, max_constraint_iterations=None):
        r"""
        Args:
            constraint_tolerance (float): Largest admissible absolute position
                error after enforcement (default: `Defaults.CONSTRAINT_TOLERANCE`).
            max_constraint_iterations (int): Bound on Newton iterations
                (default: `Defaults.MAX_CONSTRAINT_ITERATIONS`).
        """
        super().__init__()
        if constraint_tolerance is None:
            constraint_tolerance = Defaults.CONSTRAINT_TOLERANCE
        if max_constraint_iterations is None:
            max_constraint_iterations = Defaults.MAX_CONSTRAINT_ITERATIONS
        self.constraint_tolerance = constraint_tolerance
        self.max_constraint_iterations = max_constraint_iterations
        # use_euler_angles -> TreeSolver
        self._solvers = {}

    # Realization

    def realize(self, state, stage):
        """Bring `state` up to `stage`, one stage at a time.

        If a stage fails, the state stays at the last stage that succeeded.
        """
        stage = Stage(stage)
        while state.stage < stage:
            target = state.stage.next()
            self._realize_stage(state, target)
            state.advance_to_stage(target)
            logger.debug("Realized %s", target.name)

    def _realize_stage(self, state, stage):
        if stage == Stage.BUILT:
            self.seal()
            if state.get_allocation_record(self) is None:
                index = state.allocate_discrete_variable(Stage.MODELED, False)
                state.set_allocation_record(self, _Allocation(index))

        elif stage == Stage.MODELED:
            allocation = self._allocation(state)
            use_euler = bool(state.get_discrete_variable(allocation.use_euler_index))
            if allocation.model is None:
                solver = self.get_solver_for(use_euler)
                q_start = state.allocate_q(solver.default_q())
                u_start = state.allocate_u(jnp.zeros(solver.n_u))
                body_forces_index = state.allocate_discrete_variable(
                    Stage.DYNAMICS, jnp.zeros((solver.n_bodies, 6))
                )
                joint_forces_index = state.allocate_discrete_variable(
                    Stage.DYNAMICS, jnp.zeros(solver.n_u)
                )
                allocation.model = _Model(
                    solver, q_start, u_start, body_forces_index, joint_forces_index
                )
            elif allocation.model.solver.use_euler_angles != use_euler:
                raise OrderingError(
                    "The Euler angle option changed after Q was allocated for this state."
                )
            state.set_cache_entry(_MODEL, Stage.MODELED, allocation.model)

        elif stage == Stage.CONFIGURED:
            model = state.get_cache_entry(_MODEL)
            state.set_cache_entry(
                _CONFIGURED, Stage.CONFIGURED, model.solver.configure(self._q(state, model))
            )

        elif stage == Stage.MOVING:
            model = state.get_cache_entry(_MODEL)
            motion = model.solver.motion(
                self._q(state, model), self._u(state, model), state.get_cache_entry(_CONFIGURED)
            )
            if not bool(motion.ok):
                raise SingularCoordinatesError(
                    "Euler angle rates are undefined at this configuration (cos b = 0); "
                    "use quaternions or move the middle angle away from +-pi/2."
                )
            state.set_cache_entry(_MOVING, Stage.MOVING, motion)

        elif stage == Stage.DYNAMICS:
            model = state.get_cache_entry(_MODEL)
            state.set_cache_entry(
                _DYNAMICS,
                Stage.DYNAMICS,
                model.solver.dynamics(
                    state.get_cache_entry(_CONFIGURED), state.get_cache_entry(_MOVING)
                ),
            )

        elif stage == Stage.REACTING:
            model = state.get_cache_entry(_MODEL)
            udot, A, multipliers, ok = model.solver.forward_dynamics(
                state.get_cache_entry(_CONFIGURED),
                state.get_cache_entry(_MOVING),
                state.get_cache_entry(_DYNAMICS),
                state.get_discrete_variable(model.joint_forces_index),
                state.get_discrete_variable(model.body_forces_index),
            )
            if not bool(ok):
                raise SingularMassMatrixError(
                    "Articulated inertia is not positive definite; "
                    "check for massless bodies at the tips of the tree."
                )
            state.set_cache_entry(_REACTING, Stage.REACTING, (udot, A, multipliers))

    # Modeling options

    def get_solver_for(self, use_euler_angles):
        """Compiled kernels of this topology for one modeling option."""
        use_euler_angles = bool(use_euler_angles)
        if use_euler_angles not in self._solvers:
            self._solvers[use_euler_angles] = TreeSolver(self, use_euler_angles)
        return self._solvers[use_euler_angles]

    def get_solver(self, state):
        return self._model(state).solver

    def set_use_euler_angles(self, state, use_euler_angles):
        """Choose Euler angles (True) or quaternions (False) for BALL and FREE
        orientations. Only legal after BUILT and before MODELED."""
        if state.stage >= Stage.MODELED:
            raise OrderingError(
                f"The Euler angle option must be set before MODELED; state is at {state.stage.name}."
            )
        allocation = self._allocation(state)
        state.set_discrete_variable(allocation.use_euler_index, bool(use_euler_angles))

    def get_use_euler_angles(self, state):
        allocation = self._allocation(state)
        return bool(state.get_discrete_variable(allocation.use_euler_index))

    # Internal accessors

    def _allocation(self, state):
        self._require(state, Stage.BUILT, "The Euler angle option")
        return state.get_allocation_record(self)

    def _model(self, state):
        return state.get_cache_entry(_MODEL)

    def _dynamics(self, state, model):
        # DYNAMICS output, computed from the cached configuration and motion
        # when the state has not been realized that far
        if state.stage >= Stage.DYNAMICS:
            return state.get_cache_entry(_DYNAMICS)
        return model.solver.dynamics(
            state.get_cache_entry(_CONFIGURED), state.get_cache_entry(_MOVING)
        )

    @staticmethod
    def _q(state, model):
        return state.get_q()[model.q_start:model.q_start + model.solver.n_q]

    @staticmethod
    def _u(state, model):
        return state.get_u()[model.u_start:model.u_start + model.solver.n_u]

    @staticmethod
    def _require(state, stage, what):
        if state.stage < stage:
            raise NotRealizedError(
                f"{what} requires stage {Stage(stage).name}; state is at {state.stage.name}."
            )

    # Generalized coordinates and speeds

    def get_q(self, state):
        return self._q(state, self._model(state))

    def get_u(self, state):
        return self._u(state, self._model(state))

    def set_q(self, state, q):
        model = self._model(state)
        q = as_array(q, (model.solver.n_q,), "q")
        state.set_q(q, start=model.q_start)

    def set_u(self, state, u):
        model = self._model(state)
        u = as_array(u, (model.solver.n_u,), "u")
        state.set_u(u, start=model.u_start)

    def _joint_slot(self, count, joint, slot, name):
        if not 0 <= slot < count:
            raise IndexError(f"Joint {joint} has {count} {name} entries. Got slot {slot}.")

    def get_joint_q(self, state, joint, slot=None):
        model = self._model(state)
        self._check_body(joint, "joint")
        q = model.solver.joint_q(self.get_q(state), joint)
        return q if slot is None else q[slot]

    def get_joint_u(self, state, joint, slot=None):
        model = self._model(state)
        self._check_body(joint, "joint")
        u = model.solver.joint_u(self.get_u(state), joint)
        return u if slot is None else u[slot]

    def set_joint_q(self, state, joint, slot, value):
        model = self._model(state)
        self._check_body(joint, "joint")
        self._joint_slot(model.solver.q_count[joint], joint, slot, "q")
        state.set_q(jnp.array([value]), start=model.q_start + model.solver.q_start[joint] + slot)

    def set_joint_u(self, state, joint, slot, value):
        model = self._model(state)
        self._check_body(joint, "joint")
        self._joint_slot(model.solver.u_count[joint], joint, slot, "u")
        state.set_u(jnp.array([value]), start=model.u_start + model.solver.u_start[joint] + slot)

    # Stage outputs

    def get_body_configuration(self, state, body):
        """Pose :math:`X_{GB}` of `body` in ground (CONFIGURED)."""
        self._check_body(body, "body")
        X = state.get_cache_entry(_CONFIGURED).X
        return Transform(X.R[body], X.p[body])

    def get_position_errors(self, state):
        return state.get_cache_entry(_CONFIGURED).errors

    def get_body_velocity(self, state, body):
        """Spatial velocity of `body` (MOVING)."""
        self._check_body(body, "body")
        return state.get_cache_entry(_MOVING).V[body]

    def get_qdot(self, state):
        return state.get_cache_entry(_MOVING).qdot

    def get_velocity_errors(self, state):
        return state.get_cache_entry(_MOVING).velocity_errors

    def get_kinetic_energy(self, state):
        return state.get_cache_entry(_DYNAMICS).kinetic_energy

    def get_gyroscopic_forces(self, state):
        return state.get_cache_entry(_DYNAMICS).bias

    def get_udot(self, state):
        return state.get_cache_entry(_REACTING)[0]

    def get_body_acceleration(self, state, body):
        """Spatial acceleration of `body` (REACTING)."""
        self._check_body(body, "body")
        return state.get_cache_entry(_REACTING)[1][body]

    def get_multipliers(self, state):
        return state.get_cache_entry(_REACTING)[2]

    # Applied forces

    def get_applied_body_forces(self, state):
        return state.get_discrete_variable(self._model(state).body_forces_index)

    def get_applied_joint_forces(self, state):
        return state.get_discrete_variable(self._model(state).joint_forces_index)

    def _add_body_forces(self, state, model, forces):
        index = model.body_forces_index
        state.set_discrete_variable(index, state.get_discrete_variable(index) + forces)

    def clear_applied_forces(self, state):
        model = self._model(state)
        state.set_discrete_variable(model.body_forces_index, jnp.zeros((model.solver.n_bodies, 6)))
        state.set_discrete_variable(model.joint_forces_index, jnp.zeros(model.solver.n_u))

    def apply_gravity(self, state, gravity):
        """Add the weight of every body, applied at its center of mass."""
        model = self._model(state)
        X = state.get_cache_entry(_CONFIGURED).X
        gravity = as_array(gravity, (3,), "gravity")
        self._add_body_forces(state, model, model.solver.gravity_forces(X.R, gravity))

    def apply_point_force(self, state, body, station, force):
        """Add `force` (in ground) acting at `station` (in the frame of `body`)."""
        model = self._model(state)
        self._check_body(body, "body")
        X = state.get_cache_entry(_CONFIGURED).X
        F = point_force_to_spatial(X.R[body], as_array(station, (3,), "station"), as_array(force, (3,), "force"))
        self._add_body_forces(state, model, jnp.zeros((model.solver.n_bodies, 6)).at[body].set(F))

    def apply_body_torque(self, state, body, torque):
        """Add a pure moment (in ground) to `body`."""
        model = self._model(state)
        self._check_body(body, "body")
        F = body_torque_to_spatial(as_array(torque, (3,), "torque"))
        self._add_body_forces(state, model, jnp.zeros((model.solver.n_bodies, 6)).at[body].set(F))

    def apply_joint_force(self, state, joint, slot, force):
        """Add a generalized force on mobility `slot` of `joint`."""
        model = self._model(state)
        self._check_body(joint, "joint")
        self._joint_slot(model.solver.u_count[joint], joint, slot, "u")
        index = model.joint_forces_index
        tau = state.get_discrete_variable(index)
        state.set_discrete_variable(index, tau.at[model.solver.u_start[joint] + slot].add(force))

    # Constraint enforcement

    def enforce_configuration_constraints(self, state):
        """Move Q onto the constraint manifold. Q is only written if it changed."""
        model = self._model(state)
        q = self.get_q(state)
        q_new = enforce_positions(
            model.solver, q, self.constraint_tolerance, self.max_constraint_iterations
        )
        if not bool(jnp.array_equal(q, q_new)):
            state.set_q(q_new, start=model.q_start)

    def enforce_motion_constraints(self, state):
        """Project U on the velocities allowed by the constraints (needs CONFIGURED)."""
        self._require(state, Stage.CONFIGURED, "enforce_motion_constraints")
        model = self._model(state)
        if model.solver.n_multipliers == 0:
            return
        u = model.solver.project_velocities(state.get_cache_entry(_CONFIGURED), self.get_u(state))
        state.set_u(u, start=model.u_start)

    # Operators

    def _body_forces(self, model, body_forces):
        if body_forces is None:
            return jnp.zeros((model.solver.n_bodies, 6))
        return as_array(body_forces, (model.solver.n_bodies, 6), "body_forces")

    def calc_tree_udot(self, state, joint_forces, body_forces, constrained=True):
        r"""Generalized accelerations under the given forces, ignoring the
        applied forces stored in the state (needs MOVING).

        Args:
            state (State): A state realized to at least MOVING.
            joint_forces (array-like): Generalized forces (shape: :math:`(n_u)`).
            body_forces (array-like): Spatial forces per body (shape: :math:`(B, 6)`).
            constrained (bool): Include the constraint forces (default: True).

        Returns:
            (jnp.ndarray): :math:`\dot{u}` (shape: :math:`(n_u)`).
        """
        self._require(state, Stage.MOVING, "calc_tree_udot")
        model = self._model(state)
        solver = model.solver
        tau = as_array(joint_forces, (solver.n_u,), "joint_forces")
        F = self._body_forces(model, body_forces)
        stages = (
            state.get_cache_entry(_CONFIGURED),
            state.get_cache_entry(_MOVING),
            self._dynamics(state, model),
        )
        if constrained:
            udot, _, _, ok = solver.forward_dynamics(*stages, tau, F)
        else:
            udot, ok = solver.tree_forward_dynamics(*stages, tau, F)
        if not bool(ok):
            raise SingularMassMatrixError("Articulated inertia is not positive definite.")
        return udot

    def calc_tree_equivalent_joint_forces(self, state, body_forces):
        """Generalized forces doing the same work as `body_forces` (needs MOVING)."""
        self._require(state, Stage.MOVING, "calc_tree_equivalent_joint_forces")
        model = self._model(state)
        return model.solver.equivalent_joint_forces(
            state.get_cache_entry(_CONFIGURED), self._body_forces(model, body_forces)
        )

    def calc_internal_gradient_from_spatial(self, state, body_forces):
        """Same projection as :meth:`calc_tree_equivalent_joint_forces`; it only
        depends on the configuration (needs CONFIGURED)."""
        self._require(state, Stage.CONFIGURED, "calc_internal_gradient_from_spatial")
        model = self._model(state)
        return model.solver.equivalent_joint_forces(
            state.get_cache_entry(_CONFIGURED), self._body_forces(model, body_forces)
        )

    def calc_tree_inverse_dynamics(self, state, udot, body_forces=None):
        """Generalized forces producing `udot` on the unconstrained tree (needs MOVING)."""
        self._require(state, Stage.MOVING, "calc_tree_inverse_dynamics")
        model = self._model(state)
        udot = as_array(udot, (model.solver.n_u,), "udot")
        return model.solver.inverse_dynamics(
            state.get_cache_entry(_CONFIGURED),
            state.get_cache_entry(_MOVING),
            self._dynamics(state, model),
            udot,
            self._body_forces(model, body_forces),
        )
