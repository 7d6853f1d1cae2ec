"""
ledger_engines.tracer -- Engine invocation tracer emitting LEDGER_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps pure engine functions with one structured log
    record carrying engine name, version, a fingerprint of selected inputs
    and the duration.

Architecture position:
    Engines -- support for the pure calculation layer.  Emits a log record
    only; does not introduce I/O into the engines.

Invariants enforced:
    - Fingerprints are deterministic: dict keys are sorted and values are
      canonicalized before hashing.
    - The decorator never mutates arguments or results.

Usage:
    @traced_engine("amortization", "1.0", fingerprint_fields=("total_amount",))
    def amortize(total_amount, start_month, end_month):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from ledger_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, (bool, int, str, Decimal)):
        return str(value)
    if isinstance(value, dict):
        return json.dumps(
            {str(k): _canonicalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))},
            sort_keys=True,
        )
    if isinstance(value, (list, tuple)):
        return json.dumps([_canonicalize(v) for v in value])
    return str(value)


def compute_input_fingerprint(inputs: dict[str, Any]) -> str:
    """SHA-256 over the canonicalized inputs, truncated to 16 hex chars."""
    canonical = json.dumps(
        {k: _canonicalize(v) for k, v in sorted(inputs.items())},
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] | None = None,
) -> Callable:
    """Decorator factory for engine entry points.

    Args:
        engine_name: Logical engine name in the trace record.
        engine_version: Version string of the engine contract.
        fingerprint_fields: Argument names hashed into the fingerprint.
            None hashes every bound argument except ``self``.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            arguments = {k: v for k, v in bound.arguments.items() if k != "self"}
            if fingerprint_fields is not None:
                arguments = {k: arguments.get(k) for k in fingerprint_fields}

            started = time.perf_counter()
            result = func(*args, **kwargs)
            duration_ms = round((time.perf_counter() - started) * 1000, 3)

            _logger.info(
                "LEDGER_ENGINE_TRACE",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "function": func.__qualname__,
                    "input_fingerprint": compute_input_fingerprint(arguments),
                    "duration_ms": duration_ms,
                },
            )
            return result

        return wrapper

    return decorator
