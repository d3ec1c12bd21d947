"""
Utility functions for the application
"""
import json
import math
import re
import uuid
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from ..core.exceptions import DeadlineExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Shared pool for deadline-bound calls to external services
_deadline_executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="deadline")


def call_with_deadline(
    func: Callable[..., T],
    *args: Any,
    timeout: Optional[float] = None,
    service: str = "external",
    **kwargs: Any
) -> T:
    """
    Run ``func`` and wait at most ``timeout`` seconds for it.

    The call runs on a worker thread; when the deadline passes the caller gets
    ``DeadlineExceeded`` while the worker is left to finish on its own.
    A ``timeout`` of ``None`` or ``0`` calls ``func`` inline.
    """
    if not timeout:
        return func(*args, **kwargs)

    future = _deadline_executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout:
        future.cancel()
        logger.warning(f"Call to {service} exceeded deadline of {timeout:g}s")
        raise DeadlineExceeded(service, timeout)


def extract_json(content: str, expect: Optional[type] = None) -> Optional[Any]:
    """
    Return the first well-formed JSON value embedded in ``content``.

    Handles bare JSON, markdown code fences and JSON surrounded by prose.
    When ``expect`` is ``list`` or ``dict`` only values of that type count.
    """
    if not content:
        return None

    def _accept(value: Any) -> bool:
        if expect is None:
            return isinstance(value, (list, dict))
        return isinstance(value, expect)

    text = content.strip()

    # Try direct JSON parse
    try:
        value = json.loads(text)
        if _accept(value):
            return value
    except json.JSONDecodeError:
        pass

    # Try to extract JSON from markdown code block
    fence = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', text)
    if fence:
        try:
            value = json.loads(fence.group(1))
            if _accept(value):
                return value
        except json.JSONDecodeError:
            pass

    # Scan for the first position that decodes as a JSON value
    decoder = json.JSONDecoder()
    openers = "[{" if expect is None else ("[" if expect is list else "{")
    for match in re.finditer(f"[{re.escape(openers)}]", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if _accept(value):
            return value

    return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return int(math.floor(value + 0.5))


def percentage(part: int, total: int) -> int:
    """Integer percentage, 0 when ``total`` is 0."""
    if total == 0:
        return 0
    return round_half_up(100 * part / total)


def generate_id(prefix: str = "") -> str:
    """Generate a unique identifier"""
    value = uuid.uuid4().hex
    if prefix:
        return f"{prefix}_{value}"
    return value


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def slugify(value: str, max_length: int = 40) -> str:
    """Lowercase, dash-separated identifier made of [a-z0-9-]"""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:max_length].strip("-")


def safe_filename(filename: str) -> str:
    """Make filename safe for filesystem"""
    # Remove or replace unsafe characters
    unsafe_chars = '<>:"/\\|?*'
    for char in unsafe_chars:
        filename = filename.replace(char, "_")
    return filename


def is_valid_pdf(filename: str) -> bool:
    """Check if file is a valid PDF"""
    return filename.lower().endswith(".pdf")


def truncate(text: str, length: int) -> str:
    """Shorten text for logs"""
    if len(text) <= length:
        return text
    return text[:length] + "..."
