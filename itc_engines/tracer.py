"""
Engine invocation tracing.

``@traced_engine`` wraps a pure calculation and logs one ``ITC_ENGINE_TRACE``
record per call with the engine name and version, the call duration and an
input fingerprint. The fingerprint is the first 16 hex characters of a
SHA-256 over the named arguments, serialized as sorted-key JSON. Positional
and keyword calls of the same inputs produce the same fingerprint, and an
argument that was not supplied contributes ``null``.

Usage::

    @traced_engine("gst", "1.0", fingerprint_fields=("taxable_amount", "rate"))
    def compute_tax(taxable_amount, rate, interstate, cess_rate=0):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from dataclasses import fields, is_dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from itc_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")


def _encode(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        encoded = {f.name: getattr(value, f.name) for f in fields(value)}
        encoded["__type__"] = type(value).__name__
        return encoded
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, date)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return repr(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    selected = {name: arguments.get(name) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, default=_encode)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Log ITC_ENGINE_TRACE around each call of the decorated engine function."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(
                    fingerprint_fields, bound.arguments
                )

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            logger.info(
                "ITC_ENGINE_TRACE",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": elapsed_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
