"""
Model selection by priority and remaining capacity.
"""

import logging
from typing import Optional, Sequence

from ..config import ConfigManager
from ..exceptions import UnknownModelError
from .rate_limit_service import RateLimitTracker

logger = logging.getLogger(__name__)


class ModelSelector:
    """Returns the first admissible model of a priority list."""

    def __init__(self, tracker: RateLimitTracker, config: ConfigManager):
        self.tracker = tracker
        self.config = config

    async def select_model(
        self, priority: Optional[Sequence[str]] = None
    ) -> Optional[str]:
        """
        Pick the first model with capacity left.

        Args:
            priority: Model names in preference order; defaults to the
                configured priority order

        Returns:
            The model name, or None when every candidate is exhausted or
            could not be measured
        """
        candidates = list(priority) if priority else self.config.models_by_priority()

        for model in candidates:
            try:
                if await self.tracker.admissible(model):
                    logger.debug(f"🎯 Selected model {model}")
                    return model
                logger.info(f"⏳ Model {model} is at capacity, trying next")
            except UnknownModelError:
                raise
            except Exception as e:
                logger.warning(f"⚠️ Could not measure {model}, skipping: {e}")

        logger.warning(f"🚫 No model available among {candidates}")
        return None
