"""PlanetScale resources."""

from .api import PlanetScaleApi, PlanetScaleProps
from .branch import wait_for_branch_ready
from .default_role import BranchOutput, DatabaseOutput, DefaultRole, DefaultRoleOutput, DefaultRoleProps

__all__ = [
    "PlanetScaleApi",
    "PlanetScaleProps",
    "wait_for_branch_ready",
    "DefaultRole",
    "DefaultRoleOutput",
    "DefaultRoleProps",
    "DatabaseOutput",
    "BranchOutput",
]
