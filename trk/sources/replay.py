"""
Feed recorded fixes into a channel as if they came from a live sensor.
"""

import threading
import time
from typing import Callable, Iterable

from trk.sources.channel import FixChannel
from trk.tracking.types import Fix
from trk.utils.log import get_logger

logger = get_logger(__name__)


def replay_into(
    channel: FixChannel,
    fixes: Iterable[Fix],
    realtime: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Push every fix into `channel`, then close it.

    Parameters
    ----------
    channel
        Destination channel.
    fixes
        Fixes in recording order.
    realtime
        Wait between fixes as long as their timestamps are apart.
    sleep
        Sleep function, replaceable in tests.

    Returns
    -------
    int
        Number of fixes pushed.
    """
    pushed = 0
    prev_ts = None
    try:
        for fix in fixes:
            if realtime and prev_ts is not None and fix.ts > prev_ts:
                sleep((fix.ts - prev_ts) / 1000)
            channel.push(fix)
            prev_ts = fix.ts
            pushed += 1
    except (OSError, ValueError) as e:
        # unreadable or undecodable log: surfaced to the tracker like any other sensor failure
        logger.error("Fix log replay stopped after %d fixes: %s", pushed, e)
        channel.fail(e)
    finally:
        channel.close()
    logger.info("Replayed %d fixes", pushed)
    return pushed


def start_replay(channel: FixChannel, fixes: Iterable[Fix], realtime: bool = False) -> threading.Thread:
    """
    Run `replay_into` on a background thread.
    """
    thread = threading.Thread(
        target=replay_into, args=(channel, fixes, realtime), name="fix-replay", daemon=True
    )
    thread.start()
    return thread
