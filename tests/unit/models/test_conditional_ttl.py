"""Tests for the ConditionalTTL model."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cleaner.models.conditional_ttl import (
    API_VERSION,
    KIND,
    ConditionalTTL,
    ConditionalTTLSpec,
    HelmConfig,
    Target,
    TargetReference,
)
from tests.fixtures.cluster import make_conditional_ttl, make_target


def _target(name: str, **kwargs) -> Target:
    return Target(name=name, reference=TargetReference(api_version="v1", kind="Pod", name="p"), **kwargs)


class TestConditionalTTLSpec:
    """Tests for ConditionalTTLSpec parsing and validation."""

    def test_from_dict(self) -> None:
        """Test parsing a complete spec."""
        spec = ConditionalTTLSpec.from_dict(
            {
                "ttl": "1h",
                "retry": {"period": "5m"},
                "helm": {"release": "nginx", "delete": True},
                "targets": [make_target("db", ref_name="db-0", kind="Pod", delete=True)],
                "conditions": ["db.status.phase == 'Running'"],
                "cloudEventSink": "http://sink",
            }
        )

        assert spec.ttl == timedelta(hours=1)
        assert spec.retry_period == timedelta(minutes=5)
        assert spec.helm == HelmConfig(release="nginx", delete=True)
        assert spec.targets[0].name == "db"
        assert spec.targets[0].reference.is_single is True
        assert spec.targets[0].delete is True
        assert spec.conditions == ["db.status.phase == 'Running'"]
        assert spec.cloud_event_sink == "http://sink"

    def test_release_ref_requires_delete(self) -> None:
        """Test that a release is only torn down when helm.delete is set."""
        spec = ConditionalTTLSpec(ttl=timedelta(0), helm=HelmConfig(release="nginx", delete=False))
        assert spec.release_ref is None

        spec.helm.delete = True
        assert spec.release_ref == "nginx"

    def test_evaluated_target_names(self) -> None:
        """Test that only included targets are exposed to conditions."""
        spec = ConditionalTTLSpec(
            ttl=timedelta(0),
            targets=[_target("a", include_when_evaluating=True), _target("b"), _target("c", include_when_evaluating=True)],
        )

        assert spec.evaluated_target_names() == ["a", "c"]

    def test_validate_accepts_valid_spec(self) -> None:
        """Test validation of a valid spec."""
        spec = ConditionalTTLSpec(
            ttl=timedelta(minutes=1),
            retry_period=timedelta(seconds=30),
            targets=[_target("a")],
            conditions=["true"],
        )

        assert spec.validate() is True

    def test_validate_rejects_reserved_name(self) -> None:
        """Test that the name 'time' is rejected."""
        spec = ConditionalTTLSpec(ttl=timedelta(0), targets=[_target("time")])

        with pytest.raises(ValueError, match="reserved"):
            spec.validate()

    def test_validate_rejects_duplicate_names(self) -> None:
        """Test that duplicate target names are rejected."""
        spec = ConditionalTTLSpec(ttl=timedelta(0), targets=[_target("a"), _target("a")])

        with pytest.raises(ValueError, match="Duplicate"):
            spec.validate()

    def test_validate_rejects_reference_without_lookup(self) -> None:
        """Test that a reference needs a name or a selector."""
        target = Target(name="a", reference=TargetReference(api_version="v1", kind="Pod"))
        spec = ConditionalTTLSpec(ttl=timedelta(0), targets=[target])

        with pytest.raises(ValueError, match="name or a labelSelector"):
            spec.validate()

    def test_validate_requires_retry_with_conditions(self) -> None:
        """Test that conditions need a retry period."""
        spec = ConditionalTTLSpec(ttl=timedelta(0), conditions=["true"])

        with pytest.raises(ValueError, match="retry.period"):
            spec.validate()

    def test_to_dict_roundtrip(self) -> None:
        """Test that to_dict output parses back to an equal spec."""
        spec = ConditionalTTLSpec(
            ttl=timedelta(minutes=90),
            retry_period=timedelta(seconds=10),
            targets=[_target("a", delete=True)],
            conditions=["a.metadata.name == 'p'"],
        )

        assert ConditionalTTLSpec.from_dict(spec.to_dict()) == spec


class TestConditionalTTL:
    """Tests for the ConditionalTTL object model."""

    def test_from_dict(self) -> None:
        """Test parsing object metadata."""
        data = make_conditional_ttl(name="x", namespace="ns", ttl="10m")
        data["metadata"]["resourceVersion"] = "42"
        data["metadata"]["finalizers"] = ["other/finalizer"]

        ttl = ConditionalTTL.from_dict(data)

        assert ttl.name == "x"
        assert ttl.namespace == "ns"
        assert ttl.generation == 1
        assert ttl.resource_version == "42"
        assert ttl.finalizers == ["other/finalizer"]
        assert ttl.is_being_deleted is False
        assert ttl.expires_at == datetime(2024, 5, 1, 10, 10, 0, tzinfo=timezone.utc)

    def test_from_dict_requires_name(self) -> None:
        """Test that a nameless object is rejected."""
        data = make_conditional_ttl()
        del data["metadata"]["name"]

        with pytest.raises(ValueError, match="metadata.name"):
            ConditionalTTL.from_dict(data)

    def test_from_dict_requires_creation_timestamp(self) -> None:
        """Test that an object without creationTimestamp is rejected."""
        data = make_conditional_ttl()
        del data["metadata"]["creationTimestamp"]

        with pytest.raises(ValueError, match="creationTimestamp"):
            ConditionalTTL.from_dict(data)

    def test_deletion_timestamp(self) -> None:
        """Test detection of objects being deleted."""
        data = make_conditional_ttl()
        data["metadata"]["deletionTimestamp"] = "2024-05-02T00:00:00Z"

        assert ConditionalTTL.from_dict(data).is_being_deleted is True

    def test_finalizer_helpers(self) -> None:
        """Test adding and removing finalizer markers."""
        ttl = ConditionalTTL.from_dict(make_conditional_ttl())

        assert ttl.add_finalizer("a") is True
        assert ttl.add_finalizer("a") is False
        assert ttl.has_finalizer("a") is True
        assert ttl.remove_finalizer("a") is True
        assert ttl.remove_finalizer("a") is False
        assert ttl.finalizers == []

    def test_to_dict_keeps_unknown_fields(self) -> None:
        """Test that fields not modelled survive serialisation."""
        data = make_conditional_ttl()
        data["metadata"]["labels"] = {"team": "a"}

        out = ConditionalTTL.from_dict(data).to_dict()

        assert out["apiVersion"] == API_VERSION
        assert out["kind"] == KIND
        assert out["metadata"]["labels"] == {"team": "a"}
        assert out["spec"]["ttl"] == "0s"
