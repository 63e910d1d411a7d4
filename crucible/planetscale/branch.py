"""Branch helpers."""

import logging
from typing import Any

from ..util import poll
from .api import PlanetScaleApi

logger = logging.getLogger(__name__)


async def wait_for_branch_ready(
    api: PlanetScaleApi,
    organization: str,
    database: str,
    branch: str,
    **poll_options: Any,
) -> dict[str, Any]:
    """Poll a branch until PlanetScale reports it ready.

    Extra keyword arguments are passed to :func:`crucible.util.poll`.
    """
    logger.debug(f"Waiting for branch '{branch}' of database '{database}' to be ready")
    return await poll(
        lambda: api.get_branch(organization, database, branch),
        lambda data: bool(data.get("ready")),
        description=f'branch "{branch}" of database "{database}" to be ready',
        **poll_options,
    )
