import jax.numpy as jnp


def as_array(var, shape, varname):
    r"""Convert `var` to a float array and check that it has `shape`."""
    arr = jnp.asarray(var, dtype=jnp.float64)
    if arr.shape != tuple(shape):
        raise ValueError(
            f"Expected {varname} of shape {tuple(shape)}. Got shape {arr.shape} instead."
        )
    return arr
