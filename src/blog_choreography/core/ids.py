"""ID and timestamp factories.

Entity IDs are short random hex strings (8 characters), the format the
producers have always used for posts and comments. Trace IDs are UUID4.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone


def new_entity_id(nbytes: int = 4) -> str:
    """Generate a random hex ID for a post or comment."""
    return secrets.token_hex(nbytes)


def new_trace_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)
