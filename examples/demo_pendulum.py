"""
Swing a pendulum hung from ground by a free joint and a pivot constraint,
reporting the constraint errors and energy as it goes.
"""

import argparse
import logging

import jax.numpy as jnp
from tqdm import tqdm, trange

from treedyn import JointType, Pendulum, Stage, State
from treedyn.utils.config import load_config


def exercise_state():
    """Walk a bare state through the first stages by hand."""
    state = State()
    state.advance_to_stage(Stage.BUILT)
    q3 = state.allocate_q(jnp.array([1.0, 2.0, 3.0]))
    q2 = state.allocate_q(jnp.array([-1.0, -2.0]))
    dv = state.allocate_discrete_variable(Stage.DYNAMICS, jnp.array([9.0, 10.0]))
    state.advance_to_stage(Stage.MODELED)
    dv2 = state.allocate_discrete_variable(Stage.CONFIGURED, jnp.array([31.0, 32.0, 33.0]))
    state.set_discrete_variable(dv2, jnp.array([71.0, 72.0, 73.0]))
    tqdm.write(f"q blocks start at {q3} and {q2}; discrete variables {dv}, {dv2}")
    tqdm.write(str(state))


if __name__ == "__main__":

    parser = argparse.ArgumentParser()
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--length", type=float, default=None)
    parser.add_argument("--mass", type=float, default=None)
    parser.add_argument("--gravity", type=float, default=None)
    parser.add_argument("--joint", type=str, choices=["free", "pin"], default=None)
    parser.add_argument("--initial-angle", type=float, default=None)
    parser.add_argument("--dtime", type=float, default=None)
    parser.add_argument("--endtime", type=float, default=None)
    parser.add_argument("--report-every", type=int, default=None)
    parser.add_argument("--quaternions", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    config = load_config(args.config)
    for key in ("length", "mass", "gravity", "joint", "initial_angle", "dtime", "endtime", "report_every"):
        if getattr(args, key) is not None:
            config[key] = getattr(args, key)
    if args.quaternions:
        config["use_euler_angles"] = False

    exercise_state()

    pendulum = Pendulum(
        length=config["length"],
        mass=config["mass"],
        gravity=config["gravity"],
        joint_type=JointType[config["joint"].upper()],
    )
    subsystem = pendulum.subsystem
    body = pendulum.body

    state = pendulum.new_state(config["initial_angle"], config["use_euler_angles"])
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.enforce_configuration_constraints(state)
    subsystem.realize(state, Stage.CONFIGURED)

    weight = jnp.zeros((subsystem.get_n_bodies(), 6)).at[body, 4].set(-config["mass"] * config["gravity"])
    tqdm.write(f"Gradient of the weight: {subsystem.calc_internal_gradient_from_spatial(state, weight)}")

    # kick the bob and push on the first mobility, then look at the response
    subsystem.set_joint_u(state, body, 0, 10.0)
    subsystem.clear_applied_forces(state)
    subsystem.realize(state, Stage.CONFIGURED)
    subsystem.apply_gravity(state, pendulum.gravity_vector)
    subsystem.apply_joint_force(state, body, 0, 147.0)
    subsystem.realize(state, Stage.DYNAMICS)
    tqdm.write(
        "Equivalent joint forces: "
        f"{subsystem.calc_tree_equivalent_joint_forces(state, subsystem.get_applied_body_forces(state))}"
    )
    subsystem.realize(state, Stage.REACTING)
    tqdm.write(f"udot: {subsystem.get_udot(state)}")

    # start the run from rest
    subsystem.set_u(state, jnp.zeros(state.nu))

    dtime = config["dtime"]
    numsteps = int(round((config["endtime"] - config["starttime"]) / dtime))
    for i in trange(numsteps):
        pendulum.step(state, dtime)
        if i % config["report_every"] == 0:
            subsystem.realize(state, Stage.DYNAMICS)
            t = config["starttime"] + (i + 1) * dtime
            perr = subsystem.get_position_errors(state)
            verr = subsystem.get_velocity_errors(state)
            x = pendulum.bob_position(state)
            tqdm.write(
                f"t={t:.4f} bob={x} ke={float(subsystem.get_kinetic_energy(state)):.6f} "
                f"|perr|={float(jnp.linalg.norm(perr)):.2e} |verr|={float(jnp.linalg.norm(verr)):.2e}"
            )
