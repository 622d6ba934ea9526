import numpy as np
import jax.numpy as jnp
import pytest

from treedyn import JointType, MassProperties, MultibodySubsystem, Stage, State, transform
from treedyn.utils.rotation import rotmat_about_x, rotmat_about_y


def build_chain(**kwargs):
    """A free-floating body carrying a pin-jointed link and a ball-jointed
    link, with offset joint frames on both sides of every joint."""
    subsystem = MultibodySubsystem(**kwargs)
    b1 = subsystem.add_rigid_body(
        MassProperties(2.0, jnp.array([0.1, 0.2, 0.3]), jnp.array([1.0, 2.0, 3.0])),
        transform(jnp.array([0.3, 0.0, 0.0]), rotmat_about_x(0.2)),
        0,
        transform(jnp.array([0.0, 1.0, 0.0])),
        JointType.FREE,
    )
    b2 = subsystem.add_rigid_body(
        MassProperties(1.5, jnp.array([0.5, 0.0, 0.0]), jnp.array([0.2, 0.5, 0.5])),
        jnp.array([-0.5, 0.0, 0.0]),
        b1,
        transform(jnp.array([0.4, 0.1, 0.0]), rotmat_about_y(0.3)),
        JointType.PIN,
    )
    subsystem.add_rigid_body(
        MassProperties(1.0, jnp.array([0.0, -0.4, 0.0]), jnp.array([0.3, 0.1, 0.3])),
        jnp.array([0.0, 0.4, 0.0]),
        b2,
        jnp.array([0.6, 0.0, 0.0]),
        JointType.BALL,
    )
    return subsystem


def modeled_state(subsystem, use_euler_angles):
    state = State()
    subsystem.realize(state, Stage.BUILT)
    subsystem.set_use_euler_angles(state, use_euler_angles)
    subsystem.realize(state, Stage.MODELED)
    return state


def randomize(subsystem, state, seed=0):
    """Write random (valid) coordinates and speeds into `state`."""
    rng = np.random.default_rng(seed)
    solver = subsystem.get_solver(state)
    # keep Euler angles well away from the 1-2-3 singularity
    q = jnp.array(rng.uniform(-0.6, 0.6, solver.n_q))
    subsystem.set_q(state, solver.normalize_q(q))
    subsystem.set_u(state, jnp.array(rng.standard_normal(solver.n_u)))


@pytest.fixture(params=[True, False], ids=["euler", "quaternion"])
def use_euler_angles(request):
    return request.param


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: long integrations, run with --runslow")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--runslow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --runslow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
