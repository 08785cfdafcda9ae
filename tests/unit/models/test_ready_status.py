"""Tests for the ConditionalTTL status model."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cleaner.models.status import (
    ConditionalTTLStatus,
    ConditionStatus,
    ReadyCondition,
    ReadyReason,
    TargetSnapshot,
)

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestReadyReason:
    """Tests for the wire values of Ready reasons."""

    def test_wire_values(self) -> None:
        """Test the reason strings observed by external tools."""
        assert ReadyReason.NOT_EXPIRED.value == "NotExpired"
        assert ReadyReason.TARGET_RESOLVE_ERROR.value == "TargetResolveError"
        assert ReadyReason.ENVIRONMENT_ERROR.value == "ConditionEnvironmentError"
        assert ReadyReason.COMPILE_ERROR.value == "ConditionCompileError"
        assert ReadyReason.EVALUATION_ERROR.value == "ConditionEvaluationError"
        assert ReadyReason.RESULT_NOT_BOOLEAN.value == "ConditionResultNotBoolean"
        assert ReadyReason.WAITING_FOR_CONDITIONS.value == "WaitingForConditions"
        assert ReadyReason.TERMINATING.value == "Terminating"


class TestConditionalTTLStatus:
    """Tests for condition bookkeeping and serialisation."""

    def test_set_condition_appends(self) -> None:
        """Test that the first condition is added with a transition time."""
        status = ConditionalTTLStatus()

        status.set_condition(ReadyCondition(ConditionStatus.UNKNOWN, ReadyReason.NOT_EXPIRED, "waiting"), NOW)

        ready = status.ready_condition()
        assert ready is not None
        assert ready.reason == ReadyReason.NOT_EXPIRED
        assert ready.last_transition_time == NOW

    def test_transition_time_kept_when_status_unchanged(self) -> None:
        """Test that lastTransitionTime only moves when status changes."""
        status = ConditionalTTLStatus()
        status.set_condition(ReadyCondition(ConditionStatus.FALSE, ReadyReason.COMPILE_ERROR, "a"), NOW)

        later = NOW + timedelta(minutes=5)
        status.set_condition(ReadyCondition(ConditionStatus.FALSE, ReadyReason.WAITING_FOR_CONDITIONS, "b"), later)

        assert len(status.conditions) == 1
        assert status.ready_condition().reason == ReadyReason.WAITING_FOR_CONDITIONS
        assert status.ready_condition().last_transition_time == NOW

        status.set_condition(ReadyCondition(ConditionStatus.TRUE, ReadyReason.TERMINATING, "c"), later)
        assert status.ready_condition().last_transition_time == later

    def test_roundtrip(self) -> None:
        """Test serialisation of conditions, targets and evaluation time."""
        status = ConditionalTTLStatus(
            targets=[TargetSnapshot(name="db", delete=True, include_when_evaluating=True, state={"kind": "Pod"})],
            evaluation_time=NOW,
        )
        status.set_condition(
            ReadyCondition(ConditionStatus.TRUE, ReadyReason.TERMINATING, "done", observed_generation=3), NOW
        )

        data = status.to_dict()

        assert data["evaluationTime"] == "2024-05-01T12:00:00Z"
        assert data["targets"][0]["includeWhenEvaluating"] is True
        assert data["conditions"][0] == {
            "type": "Ready",
            "status": "True",
            "reason": "Terminating",
            "message": "done",
            "observedGeneration": 3,
            "lastTransitionTime": "2024-05-01T12:00:00Z",
        }
        assert ConditionalTTLStatus.from_dict(data) == status

    def test_from_dict_skips_foreign_conditions(self) -> None:
        """Test that conditions with unknown reasons are ignored."""
        status = ConditionalTTLStatus.from_dict(
            {"conditions": [{"type": "Synced", "status": "True", "reason": "SomethingElse"}]}
        )

        assert status.conditions == []

    def test_snapshot_is_collection(self) -> None:
        """Test detection of list-object snapshots."""
        single = TargetSnapshot(name="a", delete=False, include_when_evaluating=True, state={"kind": "Pod"})
        listed = TargetSnapshot(name="b", delete=False, include_when_evaluating=True, state={"items": []})

        assert single.is_collection is False
        assert listed.is_collection is True
