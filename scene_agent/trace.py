from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

TRACE_HEADER = "X-Trace-Id"

_TRACE_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")
_trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


def generate_trace_id() -> str:
    return uuid.uuid4().hex


def normalize_trace_id(candidate: str | None) -> str:
    # Browser-supplied ids end up in log lines; anything unusual is replaced.
    value = (candidate or "").strip()
    if _TRACE_ID_RE.match(value):
        return value
    return generate_trace_id()


def set_current_trace_id(trace_id: str) -> None:
    _trace_id_var.set(trace_id)


def get_current_trace_id() -> str:
    value = _trace_id_var.get()
    if value:
        return value
    return generate_trace_id()
