"""
Bounded retry around anchor info retrieval.
"""

import asyncio

from .anchor import AnchorInfo, gen_capturing_key
from .logger import get_anchor_logger
from .sites import AnchorSite


async def try_get_anchor_info(
    site: AnchorSite,
    max_retries: int = 3,
    interval: float = 1.0
) -> AnchorInfo:
    """
    Get anchor info, retrying on failure.

    Makes at most ``max_retries + 1`` calls, sleeping a constant
    ``interval`` between them.

    Args:
        site: Info provider of the anchor.
        max_retries: Additional attempts after the first one.
        interval: Seconds to wait between attempts.

    Returns:
        AnchorInfo from the first successful attempt.

    Raises:
        Exception: The last provider error once retries are exhausted.
    """
    logger = get_anchor_logger(gen_capturing_key(site.anchor))
    fail = 0

    while True:
        try:
            return await site.get_anchor_info()
        except Exception as e:
            fail += 1
            if fail > max_retries:
                raise
            logger.warning(f"Retrying anchor info ({fail}/{max_retries}): {e}")
            await asyncio.sleep(interval)
