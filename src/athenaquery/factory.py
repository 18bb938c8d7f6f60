import asyncio
import logging
from typing import Awaitable, Callable, Optional

from athenaquery.athena_executor import AthenaExecutionClient
from athenaquery.config import AthenaConfig
from athenaquery.controller import LifecycleController
from athenaquery.errors import ConfigurationError
from athenaquery.session import build_session

logger = logging.getLogger(__name__)


def get_instance(
    config: Optional[AthenaConfig],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> LifecycleController:
    """Build a LifecycleController wired to Athena from ``config``.

    Raises:
        ConfigurationError: ``config`` is missing or invalid.
    """
    if config is None:
        raise ConfigurationError("Athena config is required.")
    config.validate()

    session = build_session(config)
    # Region-less role configs resolve the region when the first call is made.
    client = AthenaExecutionClient(
        workgroup=config.workgroup,
        max_rows=config.max_rows,
        client_factory=lambda: session.client("athena", region_name=config.region),
        skip_header=config.skip_header,
    )
    if not config.output_location:
        logger.warning(
            "No Athena output location configured; the workgroup result location will be used."
        )
    logger.info(
        "Initialized Athena controller region=%s poll_interval=%ss timeout=%ss",
        config.region,
        config.poll_interval_seconds,
        config.timeout_seconds,
    )
    return LifecycleController(
        client,
        config.output_location,
        poll_interval_seconds=config.poll_interval_seconds,
        timeout_seconds=config.timeout_seconds,
        skip_header=config.skip_header,
        lookup_retries=config.lookup_retries,
        sleep=sleep,
    )
