import yaml

# Scenario of the reference driver: a point-mass pendulum of length 5 and
# mass 3 hung from ground by a free joint and a coincident-station constraint.
PENDULUM_DEFAULTS = {
    "length": 5.0,
    "mass": 3.0,
    "gravity": 9.8,
    "joint": "free",
    "use_euler_angles": True,
    "initial_angle": 0.0,
    "dtime": 1e-4,
    "starttime": 0.0,
    "endtime": 10.0,
    "report_every": 100,
}


def load_config(path=None, defaults=None):
    """Load a YAML scenario file and merge it over `defaults`.

    Args:
        path (str or pathlib.Path): YAML file holding a mapping (default: `None`;
            only the defaults are returned).
        defaults (dict): Values to start from (default: `PENDULUM_DEFAULTS`).

    Returns:
        (dict): The merged configuration.
    """
    config = dict(PENDULUM_DEFAULTS if defaults is None else defaults)
    if path is None:
        return config
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must hold a mapping. Got {type(data)} instead.")
    unknown = sorted(set(data) - set(config))
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    config.update(data)
    return config
