"""
Accuracy gate applied to every raw fix before classification.
"""

import math

from trk.tracking.config import TrackerConfig
from trk.tracking.types import Fix
from trk.utils.log import get_logger

logger = get_logger(__name__)


def admit(fix: Fix, cfg: TrackerConfig) -> bool:
    """
    Return True if the fix is accurate enough to classify.

    A missing or NaN accuracy counts as infinite and is always rejected.
    """
    accuracy = fix.accuracy
    if accuracy is None or math.isnan(accuracy) or accuracy > cfg.max_accuracy_m:
        logger.debug("Rejected fix at %d (accuracy=%s)", fix.ts, accuracy)
        return False
    return True
