"""Global configuration and constants for the board reordering engine."""

from __future__ import annotations

import os
from typing import Final

API_BASE_URL: Final = os.environ.get("BOARDSYNC_API_BASE_URL", "http://localhost:3000/api")
DEFAULT_USER_AGENT: Final = "boardsync/0.1"
DEFAULT_TIMEOUT: Final = 15  # seconds, per HTTP request
DEFAULT_RETRIES: Final = 1
DEFAULT_BACKOFF_FACTOR: Final = 0.5

# Spacing between adjacent manual positions; leaves room for midpoint inserts
POSITION_GAP: Final = int(os.environ.get("BOARDSYNC_POSITION_GAP", "1024"))
# Positions at or below this value are too small to halve safely
TIGHT_POSITION_THRESHOLD: Final = 8
# Adjacent gaps smaller than this inside one bulk write trigger renumbering
MIN_BATCH_GAP: Final = POSITION_GAP // 2

# Safety net for a stalled persistence call
OPERATION_TIMEOUT_S: Final = float(os.environ.get("BOARDSYNC_OPERATION_TIMEOUT_S", "30"))
