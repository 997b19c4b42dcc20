from __future__ import annotations

import re

from scene_agent.errors import CodeGuardError

DENY_PATTERNS = [
    r"\beval\s*\(",
    r"\bFunction\s*\(",
    r"document\.write",
    r"\blocation\s*=(?!=)",
    r"location\.href\s*=(?!=)",
    r"window\.(open|close|alert|confirm|prompt)\b",
    r"\blocalStorage\b",
    r"\bsessionStorage\b",
    r"\bindexedDB\b",
    r"\bfetch\s*\(",
    r"\bXMLHttpRequest\b",
]

REQUIRED_MARKERS = [
    ("THREE.", "Code must use the THREE namespace."),
    ("scene.add(", "Code must add at least one object with scene.add()."),
]


def check_code(code: str) -> None:
    for pattern in DENY_PATTERNS:
        if re.search(pattern, code):
            raise CodeGuardError(f"Code blocked by denylist pattern: {pattern}")


def validate_scene_code(code: str) -> tuple[bool, str]:
    if not isinstance(code, str) or not code.strip():
        return False, "Code is empty."
    try:
        check_code(code)
    except CodeGuardError as exc:
        return False, str(exc)
    for marker, reason in REQUIRED_MARKERS:
        if marker not in code:
            return False, reason
    return True, "Code looks valid."
