import logging
import os

from setuptools import find_packages, setup

PACKAGE_NAME = "treedyn"
VERSION = "0.1.0"
DESCRIPTION = "treedyn: Staged multibody tree dynamics with constraints"
URL = "<url.to.go.in.here>"
AUTHOR = "treedyn developers"
LICENSE = "(TBD)"
DOWNLOAD_URL = ""
LONG_DESCRIPTION = """
Rigid multibody trees with kinematic constraints, driven through a staged
state (Built, Modeled, Configured, Moving, Dynamics, Reacting).
Articulated-body forward dynamics in JAX.
"""
CLASSIFIERS = [
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3 :: Only",
    "License :: OSI Approved :: MIT",
    "Topic :: Scientific/Engineering :: Physics",
]

cwd = os.path.dirname(os.path.abspath(__file__))
logger = logging.getLogger()
logging.basicConfig(format="%(levelname)s - %(message)s")


def get_requirements():
    return [
        "jax",
        "jaxlib",
        "numpy",
        "pyyaml",
        "tqdm",
    ]


def get_test_requirements():
    return [
        "pytest",
    ]


if __name__ == "__main__":
    setup(
        # Metadata
        name=PACKAGE_NAME,
        version=VERSION,
        author=AUTHOR,
        description=DESCRIPTION,
        url=URL,
        long_description=LONG_DESCRIPTION,
        licence=LICENSE,
        python_requires=">=3.9",
        # Package info
        packages=find_packages(exclude=("docs", "tests", "examples")),
        install_requires=get_requirements(),
        extras_require={"test": get_test_requirements()},
        zip_safe=True,
        classifiers=CLASSIFIERS,
    )
