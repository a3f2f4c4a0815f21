"""Symptom handler registry.

Maps each canonical Symptom to the handler that investigates it. Symptoms
without a handler must be declared in UNIMPLEMENTED_SYMPTOMS so that the
registry can prove every value of the enum is accounted for.

Usage::

    from chrca.symptoms import build_handler_registry

    registry = build_handler_registry()
    handler = registry.get(Symptom.HIGH_PART_COUNT)
"""

from __future__ import annotations

from chrca.models.evidence import Symptom
from chrca.observability.logging import get_logger
from chrca.symptoms.base import SymptomHandler
from chrca.symptoms.high_part_count import HighPartCountHandler
from chrca.symptoms.high_partition_count import HighPartitionCountHandler
from chrca.symptoms.high_query_latency import HighQueryLatencyHandler

__all__ = [
    "HandlerRegistry",
    "SymptomHandler",
    "UNIMPLEMENTED_SYMPTOMS",
    "build_handler_registry",
]

_logger = get_logger("symptom.registry")

# Accepted on the wire, answered with a structured "not implemented" error.
UNIMPLEMENTED_SYMPTOMS: frozenset[Symptom] = frozenset(
    {
        Symptom.REPLICATION_LAG,
        Symptom.MERGE_BACKLOG,
        Symptom.MUTATION_BACKLOG,
    }
)


class HandlerRegistry:
    """Symptom to handler lookup."""

    def __init__(self, unimplemented: frozenset[Symptom] = UNIMPLEMENTED_SYMPTOMS) -> None:
        self._handlers: dict[Symptom, SymptomHandler] = {}
        self._unimplemented = unimplemented

    def register(self, handler: SymptomHandler) -> None:
        if handler.symptom in self._handlers:
            raise ValueError(f"handler already registered for symptom '{handler.symptom}'")
        self._handlers[handler.symptom] = handler

    def get(self, symptom: Symptom) -> SymptomHandler | None:
        return self._handlers.get(symptom)

    @property
    def symptoms(self) -> list[Symptom]:
        return list(self._handlers)

    def validate(self) -> None:
        """Raise ValueError if any symptom is neither handled nor declared unimplemented."""
        missing = [
            s for s in Symptom if s != Symptom.UNKNOWN and s not in self._handlers and s not in self._unimplemented
        ]
        if missing:
            raise ValueError("no handler for symptoms: " + ", ".join(s.value for s in missing))


def build_handler_registry() -> HandlerRegistry:
    """Construct a HandlerRegistry with every concrete handler registered."""
    registry = HandlerRegistry()
    for handler in (HighQueryLatencyHandler(), HighPartCountHandler(), HighPartitionCountHandler()):
        registry.register(handler)
    registry.validate()

    _logger.info(
        "handler_registry_built",
        registered=[s.value for s in registry.symptoms],
        unimplemented=sorted(s.value for s in UNIMPLEMENTED_SYMPTOMS),
    )
    return registry
