"""
Instrumentation module for the portal assistant.

Provides millisecond-precision event logging for turn-ordering verification:
- classify -> dispatch -> record -> speak ordering per turn
- speech cancellation
- proactive suggestion firing
"""

import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for a host process.

    Args:
        level: Log level name; defaults to system.log_level from config
    """
    if level is None:
        from portal_assistant.config import get_config
        level = get_config().get("system.log_level", "INFO")
    logging.basicConfig(level=str(level).upper(), format=LOG_FORMAT)


def log_event(event: str, stage: str = "", interaction_id: str = ""):
    """
    Log event with monotonic timeline metadata.

    Format: [EVT] t=<ms> id=<interaction_id> stage=<stage> event=<event>

    Args:
        event: Event label/message
        stage: Optional stage name (e.g., "classify", "dispatch", "speak")
        interaction_id: Optional interaction id for correlation
    """
    ts = int(time.monotonic() * 1000)
    logger.info(f"[EVT] t={ts} id={interaction_id} stage={stage} event={event}")
