#!/usr/bin/env python3
"""Package configuration."""

import pathlib

import setuptools  # type: ignore


def get_long_description() -> str:
    """Fetch the long description from README.md."""
    with pathlib.Path("README.md").open(encoding="utf-8") as readme:
        return readme.read()


def get_version() -> str:
    """Fetch the version from the __version__ string in the code."""
    with pathlib.Path("netirc/_version.py").open(encoding="utf-8") as code:
        for line in code.readlines():
            if line.startswith("__version__"):
                delim = '"' if '"' in line else "'"
                return line.split(delim)[1]
        raise RuntimeError("Unable to find version string.")


setuptools.setup(
    name="netirc",
    version=get_version(),
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    description="IRC protocol client library",
    license="Apache2",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    package_data={"netirc": ["data/*.yaml"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Topic :: Communications :: Chat :: Internet Relay Chat",
    ],
    keywords=["irc", "ctcp", "client"],
    python_requires=">=3.10",
    # fmt: off
    install_requires=[
        "prometheus_client",
        "pyyaml",
        "structlog",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "pytest-structlog",
        ],
    },
    entry_points={
        "console_scripts": [
            "netirc = netirc:run",
        ],
    },
    # fmt: on
    zip_safe=False,
)
