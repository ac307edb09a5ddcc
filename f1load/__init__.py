"""Load generation: rate parsing, trigger modes, config files, worker pools and scenarios."""

__version__ = "0.1.0"

__all__ = [
    "api",
    "constant",
    "distribution",
    "fileconfig",
    "gaussian",
    "ramp",
    "rate",
    "scenarios",
    "staged",
    "triggers",
    "ui",
    "workers",
]