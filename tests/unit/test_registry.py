"""Tests for chrca.symptoms: handler registry construction and validation."""

from __future__ import annotations

import pytest

from chrca.models.evidence import Symptom
from chrca.symptoms import UNIMPLEMENTED_SYMPTOMS, HandlerRegistry, build_handler_registry
from chrca.symptoms.high_part_count import HighPartCountHandler
from chrca.symptoms.high_partition_count import HighPartitionCountHandler
from chrca.symptoms.high_query_latency import HighQueryLatencyHandler


class TestBuildHandlerRegistry:
    def test_registers_concrete_handlers(self) -> None:
        registry = build_handler_registry()
        assert registry.symptoms == [
            Symptom.HIGH_QUERY_LATENCY,
            Symptom.HIGH_PART_COUNT,
            Symptom.HIGH_PARTITION_COUNT,
        ]
        assert isinstance(registry.get(Symptom.HIGH_PART_COUNT), HighPartCountHandler)

    def test_unimplemented_have_no_handler(self) -> None:
        registry = build_handler_registry()
        for symptom in UNIMPLEMENTED_SYMPTOMS:
            assert registry.get(symptom) is None

    def test_every_symptom_is_accounted_for(self) -> None:
        registry = build_handler_registry()
        handled = set(registry.symptoms) | UNIMPLEMENTED_SYMPTOMS | {Symptom.UNKNOWN}
        assert handled == set(Symptom)


class TestHandlerRegistry:
    def test_duplicate_registration_raises(self) -> None:
        registry = HandlerRegistry()
        registry.register(HighQueryLatencyHandler())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(HighQueryLatencyHandler())

    def test_validate_reports_missing_handlers(self) -> None:
        registry = HandlerRegistry(unimplemented=frozenset())
        registry.register(HighPartCountHandler())
        registry.register(HighPartitionCountHandler())
        with pytest.raises(ValueError, match="no handler for symptoms: high_query_latency, replication_lag"):
            registry.validate()

    def test_validate_passes_when_complete(self) -> None:
        registry = HandlerRegistry()
        for handler in (HighQueryLatencyHandler(), HighPartCountHandler(), HighPartitionCountHandler()):
            registry.register(handler)
        registry.validate()
