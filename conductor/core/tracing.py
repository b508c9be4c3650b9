"""
Request correlation ids.

Every request gets a trace id that prefixes its log lines (``[abcd1234]``)
and is returned in terminal stream events and the ``X-Trace-ID`` header.  A
well-formed caller-supplied ``X-Request-ID`` is reused so client and server
logs line up.
"""

from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Optional

_REQUEST_ID = re.compile(r"^[A-Za-z0-9-]{8,64}$")

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def new_trace_id(requested: Optional[str] = None) -> str:
    trace_id = requested if requested and _REQUEST_ID.match(requested) else str(uuid.uuid4())
    _trace_id.set(trace_id)
    return trace_id


def current_trace_id() -> str:
    return _trace_id.get()
