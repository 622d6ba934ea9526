import logging

import jax.numpy as jnp

from .errors import NotRealizedError, OrderingError, StageError
from .stage import Stage

logger = logging.getLogger(__name__)


class State(object):
    r"""Per-simulation mutable data, tagged by stage.

    A state owns the generalized coordinates `Q`, the generalized speeds `U`,
    discrete variables and the cache of solver outputs. Its current stage
    says which of those are valid:

    - `Q` and `U` are allocated in blocks while the state is at `BUILT` or
      earlier. Writing `Q` drops the state to at most `MODELED`; writing `U`
      drops it to at most `CONFIGURED`.
    - A discrete variable is tagged with the stage it feeds. Writing it drops
      the state to just below that stage.
    - A cache entry is tagged with the stage that computes it and can only be
      read once that stage is reached. Entries above the current stage are
      discarded whenever the state drops, so a read never sees a value
      computed from stale inputs.
    """

    def __init__(self):
        self._stage = Stage.EMPTY
        self._q = jnp.zeros(0)
        self._u = jnp.zeros(0)
        # [stage, value] pairs, indexed by allocation order.
        self._discrete = []
        # key -> (stage, value)
        self._cache = {}
        # owner -> allocation record; never invalidated
        self._records = {}

    @property
    def stage(self):
        return self._stage

    @property
    def nq(self):
        return self._q.shape[0]

    @property
    def nu(self):
        return self._u.shape[0]

    def advance_to_stage(self, stage):
        """Advance to `stage`, which must be the next stage up.

        Asking for a stage that is already reached re-validates it and does
        nothing.
        """
        stage = Stage(stage)
        if stage <= self._stage:
            return
        if stage != self._stage + 1:
            raise StageError(
                f"Cannot advance from {self._stage.name} to {stage.name}; "
                f"{Stage(self._stage + 1).name} must be realized first."
            )
        self._stage = stage

    def invalidate(self, stage):
        """Mark `stage` and everything above it invalid."""
        stage = Stage(stage)
        lowered = Stage(max(stage - 1, Stage.EMPTY))
        if lowered < self._stage:
            logger.debug("State invalidated from %s down to %s", self._stage.name, lowered.name)
            self._stage = lowered
        self._cache = {
            key: entry for key, entry in self._cache.items() if entry[0] <= self._stage
        }

    # Generalized coordinates and speeds

    def _check_allocation(self, what):
        if self._stage > Stage.BUILT:
            raise OrderingError(
                f"{what} can only be allocated while the state is BUILT or earlier; "
                f"state is at {self._stage.name}."
            )

    def allocate_q(self, values):
        """Append a block of generalized coordinates and return its start index."""
        self._check_allocation("Q")
        start = self.nq
        self._q = jnp.concatenate([self._q, jnp.asarray(values, dtype=jnp.float64).reshape(-1)])
        return start

    def allocate_u(self, values):
        """Append a block of generalized speeds and return its start index."""
        self._check_allocation("U")
        start = self.nu
        self._u = jnp.concatenate([self._u, jnp.asarray(values, dtype=jnp.float64).reshape(-1)])
        return start

    def get_q(self):
        return self._q

    def get_u(self):
        return self._u

    @staticmethod
    def _write(current, values, start, name):
        values = jnp.asarray(values, dtype=jnp.float64).reshape(-1)
        stop = start + values.shape[0]
        if start < 0 or stop > current.shape[0]:
            raise IndexError(
                f"Cannot write {name}[{start}:{stop}]; {name} has {current.shape[0]} entries."
            )
        if start == 0 and stop == current.shape[0]:
            return values
        return current.at[start:stop].set(values)

    def set_q(self, values, start=0):
        """Overwrite `Q` (or the slice of it beginning at `start`)."""
        self._q = self._write(self._q, values, start, "Q")
        self.invalidate(Stage.CONFIGURED)

    def set_u(self, values, start=0):
        """Overwrite `U` (or the slice of it beginning at `start`)."""
        self._u = self._write(self._u, values, start, "U")
        self.invalidate(Stage.MOVING)

    # Discrete variables

    def allocate_discrete_variable(self, stage, value):
        """Allocate a discrete variable feeding `stage` and return its index.

        Only legal while the state has not reached `stage`.
        """
        stage = Stage(stage)
        if self._stage >= stage:
            raise OrderingError(
                f"A discrete variable for stage {stage.name} must be allocated before "
                f"that stage is reached; state is at {self._stage.name}."
            )
        self._discrete.append([stage, value])
        return len(self._discrete) - 1

    def get_discrete_variable(self, index):
        return self._discrete[index][1]

    def get_discrete_variable_stage(self, index):
        return self._discrete[index][0]

    def set_discrete_variable(self, index, value):
        entry = self._discrete[index]
        entry[1] = value
        self.invalidate(entry[0])

    def upd_discrete_variable(self, index):
        """Return a discrete variable for in-place modification.

        Counts as a write: the variable's stage is invalidated.
        """
        entry = self._discrete[index]
        self.invalidate(entry[0])
        return entry[1]

    # Allocation records

    def get_allocation_record(self, owner):
        """Bookkeeping stored by `owner` (a subsystem) about the blocks it
        allocated in this state, or None. Records survive invalidation, since
        allocated blocks do."""
        return self._records.get(owner)

    def set_allocation_record(self, owner, record):
        if owner in self._records:
            raise OrderingError(f"{owner!r} already allocated its blocks in this state.")
        self._records[owner] = record

    # Cache

    def set_cache_entry(self, key, stage, value):
        """Store a solver output that becomes valid at `stage`."""
        stage = Stage(stage)
        if stage <= self._stage:
            raise OrderingError(
                f"Cache entry {key!r} belongs to stage {stage.name}, which is already "
                f"realized; cached quantities are only written while realizing."
            )
        self._cache[key] = (stage, value)

    def get_cache_entry(self, key):
        try:
            stage, value = self._cache[key]
        except KeyError:
            raise NotRealizedError(
                f"{key!r} is not available; state is at {self._stage.name}."
            ) from None
        if stage > self._stage:
            raise NotRealizedError(
                f"{key!r} requires stage {stage.name}; state is at {self._stage.name}."
            )
        return value

    def __str__(self):
        lines = [
            f"State at {self._stage.name}:",
            f"  Q ({self.nq}): {self._q}",
            f"  U ({self.nu}): {self._u}",
        ]
        for i, (stage, value) in enumerate(self._discrete):
            lines.append(f"  discrete[{i}] ({stage.name}): {value}")
        valid = sorted(str(key) for key, (stage, _) in self._cache.items() if stage <= self._stage)
        lines.append(f"  cached: {', '.join(valid) if valid else '-'}")
        return "\n".join(lines)
