import os
import warnings
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

import structlog

Extractor = Callable[[Any], dict[str, Any]]

FAILURE_LEVELS = frozenset({"warning", "error"})


def extract_item_context(item) -> dict[str, Any]:
    return {
        "external_id": getattr(item, "external_id", None),
        "item_pk": getattr(item, "pk", None),
    }


def extract_chunk_context(chunk) -> dict[str, Any]:
    # Only the filename: the storage root is the same for every event
    return {"chunk_file": os.path.basename(os.fspath(chunk))}


DEFAULT_EXTRACTORS: Mapping[str, Extractor] = MappingProxyType(
    {
        "item": extract_item_context,
        "chunk": extract_chunk_context,
    }
)


def _without_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class StructuredLogger:
    """
    A structured logging wrapper around structlog which enforces the logging
    conventions used by the catalog pipeline.

    Every event needs a human-readable message and a short machine-readable
    ``event_code``. Warnings and errors must also carry ``reason`` and
    ``reason_code`` so failures can be aggregated by cause.

    Usage::

        structured_logger = StructuredLogger.get_logger(__name__)

        structured_logger.info(
            "Chunk committed.",
            event_code="catalog_chunk_committed",
            chunk=chunk_path,
            added=12,
        )

        structured_logger.warning(
            "Could not archive chunk.",
            event_code="catalog_chunk_archive_failed",
            reason=str(exc),
            reason_code="archive_move_failed",
            chunk=chunk_path,
        )

    Semantic context objects are expanded by extractors at log time:

    - ``item`` -> ``external_id``, ``item_pk``
    - ``chunk`` (a path) -> ``chunk_file``

    Loggers can be bound to context which is then included in every event::

        run_logger = structured_logger.bind(batch_timestamp="2025-11-18-040000")
        run_logger.info("Sync started.", event_code="catalog_sync_started")

    Explicit keyword arguments override extracted and bound values.
    """

    def __init__(self, logger, context: Optional[dict[str, Any]] = None):
        self._logger = logger
        self._context = dict(context or {})
        self._extractors = dict(DEFAULT_EXTRACTORS)

    @classmethod
    def get_logger(cls, name: str) -> "StructuredLogger":
        """
        Create a StructuredLogger for the given module name.

        The underlying structlog logger is named ``structlog.<name>`` so the
        ``structlog`` entry in ``LOGGING`` routes it.
        """
        return cls(structlog.get_logger(f"structlog.{name}"))

    def register_extractor(self, key: str, extractor: Extractor) -> None:
        """Register a context extractor for this logger instance only."""
        if key in DEFAULT_EXTRACTORS:
            warnings.warn(
                f"Extractor for '{key}' replaces the default for this logger.",
                UserWarning,
                stacklevel=2,
            )
        self._extractors[key] = extractor

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Return a new StructuredLogger with additional context bound."""
        bound = StructuredLogger(self._logger, context={**self._context, **kwargs})
        bound._extractors = dict(self._extractors)
        return bound

    def _extracted_fields(self, context: dict[str, Any]) -> dict[str, Any]:
        """
        Pop every extractor key from ``context`` (falling back to the bound
        context) and return the fields its extractor produces.
        """
        fields: dict[str, Any] = {}
        for key, extractor in self._extractors.items():
            obj = context.pop(key, self._context.get(key))
            if obj is None:
                continue
            for name, value in _without_none(extractor(obj)).items():
                fields.setdefault(name, value)
        return fields

    def log(
        self,
        level: str,
        message: str,
        *,
        event_code: str,
        reason: Optional[str] = None,
        reason_code: Optional[str] = None,
        **context: Any,
    ) -> None:
        """
        Emit a structured event. Use one of the level methods instead of
        calling this directly.

        Raises:
            ValueError: If required fields are missing for the given level.
        """
        if not message:
            raise ValueError("Log message is required.")
        if not event_code:
            raise ValueError("Structured logs must include an 'event_code' field.")
        if level in FAILURE_LEVELS and not (reason and reason_code):
            raise ValueError(
                "Warnings and errors must include both 'reason' and 'reason_code'."
            )

        event = {"event_code": event_code}
        event.update(_without_none({"reason": reason, "reason_code": reason_code}))
        event.update(self._extracted_fields(context))

        # Bound values lose to anything passed for this event
        bound = {
            key: value
            for key, value in self._context.items()
            if key not in self._extractors and key not in context
        }
        event.update(_without_none(bound))
        event.update(_without_none(context))

        getattr(self._logger, level)(message, **event)

    def debug(self, message: str, *, event_code: str, **kwargs):
        self.log("debug", message, event_code=event_code, **kwargs)

    def info(self, message: str, *, event_code: str, **kwargs):
        self.log("info", message, event_code=event_code, **kwargs)

    def warning(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        self._log_failure("warning", message, event_code, reason, reason_code, kwargs)

    def error(
        self, message: str, *, event_code: str, reason: str, reason_code: str, **kwargs
    ):
        self._log_failure("error", message, event_code, reason, reason_code, kwargs)

    def _log_failure(self, level, message, event_code, reason, reason_code, kwargs):
        self.log(
            level,
            message,
            event_code=event_code,
            reason=reason,
            reason_code=reason_code,
            **kwargs,
        )
