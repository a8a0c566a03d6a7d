"""Instance status classification."""

import logging

from lifecycle_controller.errors import ProviderIDEmpty
from lifecycle_controller.instances import InstanceProvider, NotFoundMatcher, NotFoundPredicate
from lifecycle_controller.state import InstanceStatus

logger = logging.getLogger(__name__)


async def classify_instance(
    provider_id: str,
    instances: InstanceProvider,
    is_not_found_error: NotFoundPredicate | None = None,
) -> InstanceStatus:
    """
    Classify the instance behind a provider ID.

    Errors accepted by ``is_not_found_error`` are inconclusive: an existence
    check that fails this way falls through to the shutdown check, and a
    shutdown check that fails this way counts as "not shut down". Any other
    provider error is raised to the caller.

    Returns NOT_FOUND when the instance does not exist, SHUTDOWN when it
    exists and is shut down, UNKNOWN otherwise.
    """
    if not provider_id:
        raise ProviderIDEmpty()

    tolerated = is_not_found_error or NotFoundMatcher()

    try:
        exists = await instances.instance_exists(provider_id)
    except Exception as e:
        if not tolerated(e):
            raise
        logger.info(
            "Ignoring not-found shaped error from existence check",
            extra={"provider_id": provider_id, "error": str(e)},
        )
        exists = True

    if not exists:
        return InstanceStatus.NOT_FOUND

    try:
        shutdown = await instances.instance_shutdown(provider_id)
    except Exception as e:
        if not tolerated(e):
            raise
        logger.info(
            "Ignoring not-found shaped error from shutdown check",
            extra={"provider_id": provider_id, "error": str(e)},
        )
        shutdown = False

    if shutdown:
        return InstanceStatus.SHUTDOWN
    return InstanceStatus.UNKNOWN
