import logging
from typing import NamedTuple, Tuple

import jax
import jax.numpy as jnp

from .constraints import stack_position_errors
from .forces import gravity_body_forces
from .joints import (
    jcalc_default_q,
    jcalc_hinge,
    jcalc_normalize,
    jcalc_qdot,
    jcalc_rate_singular,
    jcalc_tau,
    jcalc_transform,
    joint_q_count,
    joint_u_count,
    uses_quaternion,
)
from .utils.defaults import Defaults
from .utils.spatial import (
    Transform,
    cross_matrix,
    spatial_inertia,
    spatial_shift_force,
    spatial_shift_matrix,
    spatial_shift_velocity,
    stack_transforms,
    transform_identity,
    transform_multiply,
)

logger = logging.getLogger(__name__)


class Configuration(NamedTuple):
    """CONFIGURED stage output, batched over bodies."""
    X: Transform           # poses in ground
    H: Tuple               # hinge matrices in ground, about the body origins
    l: jnp.ndarray         # body origin minus parent origin
    r: jnp.ndarray         # body origin minus inboard joint origin
    errors: jnp.ndarray    # position errors


class Motion(NamedTuple):
    """MOVING stage output."""
    V: jnp.ndarray
    a: jnp.ndarray         # velocity-dependent part of the accelerations
    qdot: jnp.ndarray
    velocity_errors: jnp.ndarray
    ok: jnp.ndarray        # False at a coordinate singularity


class Dynamics(NamedTuple):
    """DYNAMICS stage output."""
    M: jnp.ndarray         # spatial inertias about the body origins
    bias: jnp.ndarray      # gyroscopic forces
    kinetic_energy: jnp.ndarray


class TreeSolver(object):
    r"""Recursive kinematics and dynamics of a sealed topology.

    The solver fixes the layout of the generalized coordinates for one value
    of the `use_euler_angles` modeling option and compiles (`jax.jit`) one
    kernel per pipeline stage. The recursions are plain Python loops over the
    bodies in index order; they are unrolled at trace time, so each kernel is
    specialized to the tree it was built for.

    All kernels are pure functions of arrays: body poses, spatial velocities
    and accelerations are returned batched over bodies (ground, body 0,
    included), with spatial vectors laid out as (angular, linear) about the
    body origin and expressed in ground.
    """

    def __init__(self, topology, use_euler_angles=False, singular_tolerance=None, rank_tolerance=None,
                 euler_tolerance=None):
        r"""
        Args:
            topology (Topology): Sealed body tree and constraint set.
            use_euler_angles (bool): Parametrize `BALL` and `FREE` orientations with
                body-fixed 1-2-3 angles instead of quaternions (default: False).
            singular_tolerance (float): Relative eigenvalue threshold below which an
                articulated joint inertia is reported singular
                (default: `Defaults.SINGULAR_TOLERANCE`).
            rank_tolerance (float): Relative singular value cutoff of the
                least-squares solves of the constraint layer
                (default: `Defaults.RANK_TOLERANCE`).
            euler_tolerance (float): Bound on :math:`|\cos b|` below which body-fixed
                1-2-3 angles are reported singular
                (default: `Defaults.EULER_SINGULAR_TOLERANCE`).
        """
        bodies = topology.bodies
        self.use_euler_angles = bool(use_euler_angles)
        self.n_bodies = len(bodies)
        self.parents = [body.parent for body in bodies]
        self.joint_types = [body.joint_type for body in bodies]
        self.joint_frames_on_parent = [body.joint_frame_on_parent for body in bodies]
        self.body_frames_on_joint = [body.body_frame_on_joint for body in bodies]
        self.hinges = [jcalc_hinge(joint_type) for joint_type in self.joint_types]

        self.q_start, self.q_count = [], []
        self.u_start, self.u_count = [], []
        n_q, n_u = 0, 0
        for joint_type in self.joint_types:
            self.q_start.append(n_q)
            self.u_start.append(n_u)
            self.q_count.append(joint_q_count(joint_type, self.use_euler_angles))
            self.u_count.append(joint_u_count(joint_type))
            n_q += self.q_count[-1]
            n_u += self.u_count[-1]
        self.n_q = n_q
        self.n_u = n_u
        self.has_quaternions = any(
            uses_quaternion(joint_type, self.use_euler_angles) for joint_type in self.joint_types
        )

        self.masses = jnp.array([body.mass_properties.mass for body in bodies])
        self.coms = jnp.stack([body.mass_properties.com for body in bodies])
        self.inertias = jnp.stack([body.mass_properties.inertia for body in bodies])

        self.constraints = list(topology.constraints)
        self.n_multipliers = sum(c.n_multipliers for c in self.constraints)

        if singular_tolerance is None:
            singular_tolerance = Defaults.SINGULAR_TOLERANCE
        if rank_tolerance is None:
            rank_tolerance = Defaults.RANK_TOLERANCE
        if euler_tolerance is None:
            euler_tolerance = Defaults.EULER_SINGULAR_TOLERANCE
        self.singular_tolerance = singular_tolerance
        self.rank_tolerance = rank_tolerance
        self.euler_tolerance = euler_tolerance

        # compiled kernels
        self.configure = jax.jit(self._configure)
        self.position_errors = jax.jit(self._position_errors)
        self.newton_step = jax.jit(self._newton_step)
        self.normalize_q = jax.jit(self._normalize_q)
        self.motion = jax.jit(self._motion)
        self.project_velocities = jax.jit(self._project_velocities)
        self.dynamics = jax.jit(self._dynamics)
        self.forward_dynamics = jax.jit(self._forward_dynamics)
        self.tree_forward_dynamics = jax.jit(self._tree_forward_dynamics)
        self.acceleration_errors = jax.jit(self._acceleration_errors)
        self.equivalent_joint_forces = jax.jit(self._equivalent_joint_forces)
        self.inverse_dynamics = jax.jit(self._inverse_dynamics)
        self.gravity_forces = jax.jit(self._gravity_forces)

        logger.debug(
            "TreeSolver: %d bodies, n_q=%d, n_u=%d, %d constraint equations, euler=%s",
            self.n_bodies, self.n_q, self.n_u, self.n_multipliers, self.use_euler_angles,
        )

    def default_q(self):
        """Coordinates putting every joint in its reference configuration."""
        return self._gather(
            [jcalc_default_q(joint_type, self.use_euler_angles) for joint_type in self.joint_types],
            self.n_q,
        )

    # Layout helpers

    def joint_q(self, q, i):
        return q[self.q_start[i]:self.q_start[i] + self.q_count[i]]

    def joint_u(self, u, i):
        return u[self.u_start[i]:self.u_start[i] + self.u_count[i]]

    @staticmethod
    def _gather(parts, size):
        parts = [part for part in parts if part.shape[0] > 0]
        if len(parts) == 0:
            return jnp.zeros(size)
        return jnp.concatenate(parts)

    # Recursions

    def _kinematics(self, q):
        r"""Forward kinematics, base to tip.

        Returns, per body, the pose in ground :math:`X_{GB}`, the hinge matrix
        in ground (about the body origin), the offset :math:`l` of the body
        origin from its parent's origin, and the offset :math:`r` of the body
        origin from its inboard joint frame origin.
        """
        X = [transform_identity()]
        H = [self.hinges[0]]
        l = [jnp.zeros(3)]
        r = [jnp.zeros(3)]
        for i in range(1, self.n_bodies):
            parent = self.parents[i]
            X_GJb = transform_multiply(X[parent], self.joint_frames_on_parent[i])
            X_JbJ = jcalc_transform(self.joint_types[i], self.joint_q(q, i), self.use_euler_angles)
            X_GJ = transform_multiply(X_GJb, X_JbJ)
            X_GB = transform_multiply(X_GJ, self.body_frames_on_joint[i])

            # the hinge is expressed in Jb about the J origin; rotate it to
            # ground and shift it to the body origin
            r_i = X_GB.p - X_GJ.p
            S = self.hinges[i]
            Hw = X_GJb.R @ S[0:3]
            Hv = X_GJb.R @ S[3:6] - cross_matrix(r_i) @ Hw

            X.append(X_GB)
            H.append(jnp.concatenate([Hw, Hv], axis=0))
            l.append(X_GB.p - X[parent].p)
            r.append(r_i)
        return X, H, l, r

    def _velocities(self, H, l, r, u):
        r"""Spatial velocities and the velocity-dependent (Coriolis and
        centripetal) part of the spatial accelerations, base to tip."""
        V = [jnp.zeros(6)]
        a = [jnp.zeros(6)]
        for i in range(1, self.n_bodies):
            parent = self.parents[i]
            V_rel = H[i] @ self.joint_u(u, i)
            V.append(spatial_shift_velocity(V[parent], l[i]) + V_rel)

            w_p = V[parent][0:3]
            w_rel, v_rel = V_rel[0:3], V_rel[3:6]
            a.append(jnp.concatenate([
                jnp.cross(w_p, w_rel),
                jnp.cross(w_p, jnp.cross(w_p, l[i]))
                + 2.0 * jnp.cross(w_p, v_rel)
                + jnp.cross(w_rel, jnp.cross(w_rel, r[i])),
            ]))
        return V, a

    def _accelerations(self, H, l, a, udot):
        A = [jnp.zeros(6)]
        for i in range(1, self.n_bodies):
            A.append(
                spatial_shift_velocity(A[self.parents[i]], l[i]) + a[i] + H[i] @ self.joint_u(udot, i)
            )
        return A

    def _mass_matrices(self, X):
        """Spatial inertias about the body origins, in ground."""
        M = []
        for i in range(self.n_bodies):
            R = X.R[i]
            M.append(spatial_inertia(self.masses[i], R @ self.coms[i], R @ self.inertias[i] @ R.T))
        return M

    def _bias_forces(self, X, V):
        r"""Gyroscopic forces :math:`(\omega \times I \omega, m \omega \times (\omega \times c))`."""
        b = []
        for i in range(self.n_bodies):
            R = X.R[i]
            w = V[i][0:3]
            c = R @ self.coms[i]
            I = R @ self.inertias[i] @ R.T
            b.append(jnp.concatenate([
                jnp.cross(w, I @ w),
                self.masses[i] * jnp.cross(w, jnp.cross(w, c)),
            ]))
        return b

    def _aba(self, H, l, a, M, z, tau):
        r"""Articulated-body forward dynamics.

        Solves :math:`M(q) \dot{u} = \tau + H^T(F - b) - C` for the tree without
        ever forming the mass matrix.

        Args:
            H (list): Per-body hinge matrices in ground.
            l (list): Per-body offsets from the parent origin.
            a (list): Per-body velocity-dependent accelerations.
            M (list): Per-body spatial inertias.
            z (list): Per-body bias minus applied spatial forces.
            tau (jnp.ndarray): Generalized forces (shape: :math:`(n_u)`).

        Returns:
            (tuple): The generalized accelerations, the list of body spatial
                accelerations, and a flag that is False if an articulated joint
                inertia was not positive definite.
        """
        n = self.n_bodies
        P = list(M)
        z = list(z)
        PH = [None] * n
        D = [None] * n
        eps = [None] * n
        ok = jnp.array(True)

        # backward pass: articulated inertias and bias forces
        for i in reversed(range(1, n)):
            if self.u_count[i] == 0:
                P_a = P[i]
                z_a = z[i] + P[i] @ a[i]
            else:
                PH[i] = P[i] @ H[i]
                D[i] = H[i].T @ PH[i]
                eps[i] = self.joint_u(tau, i) - H[i].T @ z[i]
                G = jnp.linalg.solve(D[i], PH[i].T).T
                P_a = P[i] - G @ PH[i].T
                z_a = z[i] + P_a @ a[i] + G @ eps[i]

                eig = jnp.linalg.eigvalsh(D[i])
                ok = ok & (eig[0] > self.singular_tolerance * jnp.maximum(1.0, eig[-1]))

            parent = self.parents[i]
            if parent > 0:
                Phi = spatial_shift_matrix(l[i])
                P[parent] = P[parent] + Phi @ P_a @ Phi.T
                z[parent] = z[parent] + Phi @ z_a

        # forward pass: accelerations
        A = [jnp.zeros(6)]
        udot = []
        for i in range(1, n):
            A_i = spatial_shift_velocity(A[self.parents[i]], l[i]) + a[i]
            if self.u_count[i] > 0:
                udot_i = jnp.linalg.solve(D[i], eps[i] - PH[i].T @ A_i)
                A_i = A_i + H[i] @ udot_i
                udot.append(udot_i)
            A.append(A_i)

        udot = self._gather(udot, self.n_u)
        ok = ok & jnp.all(jnp.isfinite(udot))
        return udot, A, ok

    def _project_to_joints(self, H, l, f):
        """Tip to base: project per-body spatial forces on the hinges,
        carrying each body's force onto its parent."""
        f = list(f)
        tau = [None] * self.n_bodies
        for i in reversed(range(1, self.n_bodies)):
            tau[i] = jcalc_tau(H[i], f[i])
            parent = self.parents[i]
            if parent > 0:
                f[parent] = f[parent] + spatial_shift_force(f[i], l[i])
        return self._gather(tau[1:], self.n_u)

    # Stage kernels
    #
    # Each kernel takes the cached output of the stage below it, so the
    # recursions run once per realization: CONFIGURED from q, MOVING from the
    # configuration and u, DYNAMICS from both, and REACTING from all three.

    def _configure(self, q):
        X, H, l, r = self._kinematics(q)
        X = stack_transforms(X)
        return Configuration(
            X, tuple(H), jnp.stack(l), jnp.stack(r), stack_position_errors(self.constraints, X)
        )

    def _position_errors(self, q):
        X, _, _, _ = self._kinematics(q)
        return stack_position_errors(self.constraints, stack_transforms(X))

    def _normalize_q(self, q):
        if not self.has_quaternions:
            return q
        return self._gather(
            [
                jcalc_normalize(self.joint_types[i], self.joint_q(q, i), self.use_euler_angles)
                for i in range(self.n_bodies)
            ],
            self.n_q,
        )

    def _newton_step(self, q):
        r"""One minimum-norm Newton step on the position errors.

        Returns:
            (tuple): The corrected (and normalized) coordinates and the rank of
                the constraint Jacobian.
        """
        err = self._position_errors(q)
        C_q = jax.jacfwd(self._position_errors)(q)
        dq = jnp.linalg.lstsq(C_q, err, rcond=self.rank_tolerance)[0]
        s = jnp.linalg.svd(C_q, compute_uv=False)
        rank = jnp.sum(s > self.rank_tolerance * s[0])
        return self._normalize_q(q - dq), rank

    def _qdot(self, q, u):
        return self._gather(
            [
                jcalc_qdot(
                    self.joint_types[i], self.joint_q(q, i), self.joint_u(u, i), self.use_euler_angles
                )
                for i in range(self.n_bodies)
            ],
            self.n_q,
        )

    def _coordinates_regular(self, q):
        regular = jnp.array(True)
        for i in range(self.n_bodies):
            regular = regular & ~jcalc_rate_singular(
                self.joint_types[i], self.joint_q(q, i), self.use_euler_angles, self.euler_tolerance
            )
        return regular

    @staticmethod
    def _pose_rates(X, V):
        r"""Time derivative of the stacked body poses, :math:`\dot{R} = [\omega]_\times R`
        and :math:`\dot{p} = v`."""
        Rdot = jnp.einsum("bij,bjk->bik", jax.vmap(cross_matrix)(V[:, 0:3]), X.R)
        return Transform(Rdot, V[:, 3:6])

    def _constraint_rates(self, X, V):
        """Time derivative of the position errors, from body poses and velocities."""
        if self.n_multipliers == 0:
            return jnp.zeros(0)

        def errors(X):
            return stack_position_errors(self.constraints, X)
        return jax.jvp(errors, (X,), (self._pose_rates(X, V),))[1]

    def _constraint_accelerations(self, X, V, A):
        """Second time derivative of the position errors, given the body
        spatial accelerations `A`."""
        if self.n_multipliers == 0:
            return jnp.zeros(0)
        return jax.jvp(self._constraint_rates, (X, V), (self._pose_rates(X, V), A))[1]

    def _velocity_jacobian(self, config):
        # velocity errors are linear in u
        def rates(u):
            V, _ = self._velocities(config.H, config.l, config.r, u)
            return self._constraint_rates(config.X, jnp.stack(V))
        return jax.jacfwd(rates)(jnp.zeros(self.n_u))

    def _project_velocities(self, config, u):
        if self.n_multipliers == 0:
            return u
        G = self._velocity_jacobian(config)
        return u - jnp.linalg.lstsq(G, G @ u, rcond=self.rank_tolerance)[0]

    def _motion(self, q, u, config):
        V, a = self._velocities(config.H, config.l, config.r, u)
        V = jnp.stack(V)
        qdot = self._qdot(q, u)
        ok = self._coordinates_regular(q) & jnp.all(jnp.isfinite(qdot))
        return Motion(V, jnp.stack(a), qdot, self._constraint_rates(config.X, V), ok)

    def _dynamics(self, config, motion):
        M = self._mass_matrices(config.X)
        V = motion.V
        ke = 0.5 * sum(V[i] @ M[i] @ V[i] for i in range(1, self.n_bodies))
        return Dynamics(
            jnp.stack(M),
            jnp.stack(self._bias_forces(config.X, V)),
            jnp.asarray(ke, dtype=jnp.float64),
        )

    def _tree(self, config, motion, dynamics, tau, F):
        z = [dynamics.bias[i] - F[i] for i in range(self.n_bodies)]
        return self._aba(config.H, config.l, motion.a, dynamics.M, z, tau)

    def _tree_forward_dynamics(self, config, motion, dynamics, tau, F):
        udot, _, ok = self._tree(config, motion, dynamics, tau, F)
        return udot, ok

    def _forward_dynamics(self, config, motion, dynamics, tau, F):
        r"""Forward dynamics of the constrained system.

        The tree accelerations are corrected by constraint forces
        :math:`-M^{-1} G^T \lambda`, with the multipliers solving
        :math:`(G M^{-1} G^T) \lambda = G \dot{u}_{tree} + b` in the least-squares
        sense (:math:`b` collects the velocity-dependent part of the
        acceleration errors). Products with :math:`M^{-1}` reuse the
        articulated-body recursion.

        Args:
            config (Configuration): Output of the CONFIGURED stage.
            motion (Motion): Output of the MOVING stage.
            dynamics (Dynamics): Output of the DYNAMICS stage.
            tau (jnp.ndarray): Applied generalized forces (shape: :math:`(n_u)`).
            F (jnp.ndarray): Applied spatial body forces (shape: :math:`(B, 6)`).

        Returns:
            (tuple): Generalized accelerations, body spatial accelerations
                (shape: :math:`(B, 6)`), multipliers and the positive
                definiteness flag.
        """
        udot, A, ok = self._tree(config, motion, dynamics, tau, F)
        if self.n_multipliers == 0:
            return udot, jnp.stack(A), jnp.zeros(0), ok

        H, l = config.H, config.l
        G = self._velocity_jacobian(config)
        A_bias = jnp.stack(self._accelerations(H, l, motion.a, jnp.zeros(self.n_u)))
        bias = self._constraint_accelerations(config.X, motion.V, A_bias)
        zero = [jnp.zeros(6)] * self.n_bodies
        Minv_Gt = jax.vmap(lambda g: self._aba(H, l, zero, dynamics.M, zero, g)[0])(G).T
        W = G @ Minv_Gt
        lam = jnp.linalg.lstsq(W, G @ udot + bias, rcond=self.rank_tolerance)[0]
        udot = udot - Minv_Gt @ lam
        A = self._accelerations(H, l, motion.a, udot)
        return udot, jnp.stack(A), lam, ok

    def _equivalent_joint_forces(self, config, F):
        r"""Generalized forces equivalent to the spatial body forces `F`,
        :math:`\tau = H^T F` accumulated tip to base."""
        return self._project_to_joints(config.H, config.l, [F[i] for i in range(self.n_bodies)])

    def _inverse_dynamics(self, config, motion, dynamics, udot, F):
        """Generalized forces producing `udot` under applied body forces `F`
        (tree only, constraint forces excluded)."""
        A = self._accelerations(config.H, config.l, motion.a, udot)
        f = [dynamics.M[i] @ A[i] + dynamics.bias[i] - F[i] for i in range(self.n_bodies)]
        return self._project_to_joints(config.H, config.l, f)

    def _gravity_forces(self, R, gravity):
        return gravity_body_forces(self.masses, self.coms, R, gravity)

    # Coordinate-space checks

    def _velocity_errors(self, q, u):
        r"""Time derivative of the position errors along :math:`\dot{q}(q, u)`."""
        if self.n_multipliers == 0:
            return jnp.zeros(0)
        return jax.jvp(self._position_errors, (q,), (self._qdot(q, u),))[1]

    def _acceleration_errors(self, q, u, udot):
        """Second time derivative of the position errors, differentiated
        through the coordinates rather than the body motion."""
        if self.n_multipliers == 0:
            return jnp.zeros(0)
        return jax.jvp(self._velocity_errors, (q, u), (self._qdot(q, u), udot))[1]
