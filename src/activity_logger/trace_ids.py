"""
activity_logger.trace_ids

Per-request correlation identifiers.

Responsibilities:
- Resolve the configured trace id kind once, at setup time.
- Generate fresh identifiers and render them for correlation fields.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Callable

from activity_logger.errors import ConfigurationError
from activity_logger.models import TraceId, TraceIdKind
from activity_logger.observability.logging import get_logger

log = get_logger(__name__)

TraceIdGenerator = Callable[[], TraceId]


def _text() -> str:
    return str(uuid.uuid4())


def _int32() -> int:
    # Non-negative signed 32-bit range.
    return secrets.randbelow(2**31)


def _int64() -> int:
    return secrets.randbits(63)


_GENERATORS: dict[TraceIdKind, TraceIdGenerator] = {
    TraceIdKind.text: _text,
    TraceIdKind.uuid: uuid.uuid4,
    TraceIdKind.int32: _int32,
    TraceIdKind.int64: _int64,
}


class TraceIdProvider:
    """
    Stateless trace id source bound to one kind (or one custom generator).
    """

    def __init__(self, kind: TraceIdKind, generator: TraceIdGenerator | None = None) -> None:
        if generator is not None and not callable(generator):
            raise ConfigurationError("custom trace id generator must be callable")
        self._kind = kind
        self._custom = generator is not None
        self._generate = generator or _GENERATORS[kind]

    @classmethod
    def from_kind(
        cls, kind: str | TraceIdKind, generator: TraceIdGenerator | None = None
    ) -> TraceIdProvider:
        try:
            resolved = TraceIdKind(kind)
        except ValueError as e:
            supported = ", ".join(k.value for k in TraceIdKind)
            raise ConfigurationError(
                f"unsupported trace id kind {kind!r} (supported: {supported})"
            ) from e
        return cls(resolved, generator)

    @property
    def kind(self) -> TraceIdKind:
        return self._kind

    def generate(self) -> TraceId:
        if not self._custom:
            return self._generate()
        try:
            trace_id = self._generate()
        except Exception:
            log.warning("trace_id_generator_failed", exc_info=True)
            trace_id = None
        if trace_id is None or str(trace_id) == "":
            # Never hand out an empty correlation id; the stored record and logs must agree.
            fallback = _text()
            log.warning("empty_trace_id_replaced", fallback=fallback)
            return fallback
        return trace_id

    def format(self, trace_id: TraceId) -> str:
        return str(trace_id)
