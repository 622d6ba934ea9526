import logging

from .bodies import Body, MassProperties
from .constraints import Constraint, ConstraintType
from .errors import OrderingError, TopologyError
from .joints import JointType

logger = logging.getLogger(__name__)


class Topology(object):
    r"""The body/joint tree and its constraint set.

    Ground is body 0. Bodies are numbered in the order they are added and a
    parent must already exist, so index order is a topological order of the
    tree (parents before children) and no cycle can be formed.

    Once sealed (on realizing `Stage.BUILT`) no bodies or constraints can be
    added; the topology can then be shared by any number of states.
    """

    def __init__(self):
        self.bodies = [Body(0, MassProperties(0.0), None, -1, None, JointType.WELD)]
        self.constraints = []
        self._sealed = False

    @property
    def sealed(self):
        return self._sealed

    def seal(self):
        if not self._sealed:
            logger.debug(
                "Sealing topology: %d bodies, %d constraints",
                len(self.bodies), len(self.constraints),
            )
        self._sealed = True

    def _check_open(self, what):
        if self._sealed:
            raise OrderingError(f"Cannot add {what}: the topology is sealed.")

    def _check_body(self, index, what):
        if not 0 <= index < len(self.bodies):
            raise TopologyError(
                f"{what} must be an existing body index in [0, {len(self.bodies)}). Got: {index}"
            )

    def add_rigid_body(
        self,
        mass_properties,
        joint_frame_on_body,
        parent,
        joint_frame_on_parent,
        joint_type,
    ):
        r"""Add a body connected to `parent` by a joint.

        Args:
            mass_properties (MassProperties): Mass properties in the new body frame.
            joint_frame_on_body (Transform or array-like): Joint frame J, fixed on the
                new body (a 3-vector is a translation-only frame).
            parent (int): Index of the parent body (0 for ground).
            joint_frame_on_parent (Transform or array-like): Joint frame Jb, fixed on
                the parent.
            joint_type (JointType): Kind of joint between Jb and J.

        Returns:
            (int): Index of the new body.
        """
        self._check_open("a body")
        self._check_body(parent, "parent")
        if not isinstance(mass_properties, MassProperties):
            raise TypeError(
                f"mass_properties must be a MassProperties. Got {type(mass_properties)} instead."
            )
        index = len(self.bodies)
        self.bodies.append(
            Body(index, mass_properties, joint_frame_on_body, parent, joint_frame_on_parent, joint_type)
        )
        return index

    def _add_constraint(self, constraint):
        self._check_open("a constraint")
        self._check_body(constraint.body_a, "body_a")
        self._check_body(constraint.body_b, "body_b")
        if constraint.body_a == constraint.body_b:
            raise TopologyError(f"A constraint needs two distinct bodies. Got {constraint.body_a} twice.")
        self.constraints.append(constraint)
        return len(self.constraints) - 1

    def add_coincident_stations_constraint(self, body_a, station_a, body_b, station_b):
        """Keep `station_a` on `body_a` coincident with `station_b` on `body_b`."""
        return self._add_constraint(
            Constraint(ConstraintType.COINCIDENT_STATIONS, body_a, station_a, body_b, station_b)
        )

    def add_weld_constraint(self, body_a, frame_a, body_b, frame_b):
        """Keep `frame_a` on `body_a` aligned with and coincident to `frame_b` on `body_b`."""
        return self._add_constraint(Constraint(ConstraintType.WELD, body_a, frame_a, body_b, frame_b))

    def add_constant_distance_constraint(self, body_a, station_a, body_b, station_b, distance):
        """Keep two stations `distance` apart."""
        return self._add_constraint(
            Constraint(
                ConstraintType.CONSTANT_DISTANCE, body_a, station_a, body_b, station_b, distance
            )
        )

    def get_n_bodies(self):
        """Number of bodies, ground included."""
        return len(self.bodies)

    def get_n_constraints(self):
        return len(self.constraints)

    def get_body(self, index):
        self._check_body(index, "body")
        return self.bodies[index]

    def get_parent(self, index):
        return self.get_body(index).parent

    def get_mass_properties(self, index):
        return self.get_body(index).mass_properties

    def get_joint_type(self, index):
        return self.get_body(index).joint_type
