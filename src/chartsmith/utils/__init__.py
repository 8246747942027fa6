"""chartsmith utility modules.

- logging: Standardized logging with human/verbose/JSON modes
- hashing: Stable hashes for cache keys and snapshots
"""

from chartsmith.utils.hashing import canonical_json, content_hash, stable_hash
from chartsmith.utils.logging import get_logger, log_event, setup_logging

__all__ = [
    "canonical_json",
    "content_hash",
    "get_logger",
    "log_event",
    "setup_logging",
    "stable_hash",
]
