"""
pricing_engines.tracer -- PRICING_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine function and logs one trace
    record per call: engine name and version, a fingerprint of the
    selected inputs, the call's duration and whether it returned or
    raised.  Two calls with equal inputs share a fingerprint, which is what
    makes a recalculation comparable across editing sessions.

Architecture position:
    Engines -- observability support; emits a log record, never performs
    I/O of its own and never touches the inputs.

Invariants enforced:
    - Fingerprints are stable: Decimals are normalized (900 == 900.00),
      mapping and set members are sorted, dataclasses are encoded field by
      field with their type name.
    - Arguments are bound to the engine's signature before fingerprinting,
      so positional and keyword calls fingerprint the same.
    - An exception raised by the engine is traced (``outcome="error"``)
      and re-raised unchanged.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from pricing_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

F = TypeVar("F", bound=Callable[..., Any])

FINGERPRINT_LENGTH = 16


def _canonical(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return _canonical(value.value)
    if isinstance(value, Decimal):
        return f"d:{value.normalize()}"
    if isinstance(value, (bool, int, float)):
        return f"n:{value!r}"
    if isinstance(value, str):
        return f"s:{value}"
    if isinstance(value, Mapping):
        pairs = sorted((_canonical(k), _canonical(v)) for k, v in value.items())
        return "{" + ",".join(f"{k}={v}" for k, v in pairs) + "}"
    if isinstance(value, (set, frozenset)):
        return "<" + ",".join(sorted(_canonical(v) for v in value)) + ">"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        body = ",".join(
            f"{f.name}={_canonical(getattr(value, f.name))}" for f in dataclasses.fields(value)
        )
        return f"{type(value).__name__}({body})"
    return f"?:{value}"


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """
    SHA-256 prefix over the named arguments, in the order given.

    An argument that is absent hashes like an explicit None.
    """
    digest = hashlib.sha256()
    for name in fingerprint_fields:
        digest.update(f"{name}:{_canonical(arguments.get(name))};".encode("utf-8"))
    return digest.hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    """
    Decorator emitting PRICING_ENGINE_TRACE around an engine function.

    Args:
        engine_name: Engine identifier, e.g. "totals".
        engine_version: Version of the engine's rules, e.g. "1.0".
        fingerprint_fields: Parameter names hashed into ``input_fingerprint``.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            outcome = "ok"
            t0 = time.monotonic()
            try:
                return func(*args, **kwargs)
            except Exception:
                outcome = "error"
                raise
            finally:
                logger.info("PRICING_ENGINE_TRACE", extra={
                    "trace_type": "PRICING_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "outcome": outcome,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    "function": func.__qualname__,
                })

        return wrapper  # type: ignore[return-value]

    return decorator
