"""Wire-protocol version.

Bumped when an event's shape changes in a way clients must know about.
"""

from __future__ import annotations

PROTOCOL_VERSION: str = "1.0"
