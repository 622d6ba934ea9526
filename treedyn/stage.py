import enum


class Stage(enum.IntEnum):
    """Ordered validity tiers of a `State`.

    A quantity computed at one stage only depends on quantities valid at the
    same or an earlier stage.
    """

    EMPTY = 0
    BUILT = 1
    MODELED = 2
    CONFIGURED = 3
    MOVING = 4
    DYNAMICS = 5
    REACTING = 6

    def next(self):
        """The stage right after this one."""
        if self is Stage.REACTING:
            raise ValueError("REACTING is the last stage.")
        return Stage(self + 1)

    def prev(self):
        """The stage right before this one."""
        if self is Stage.EMPTY:
            raise ValueError("EMPTY is the first stage.")
        return Stage(self - 1)
