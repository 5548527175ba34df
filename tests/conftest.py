"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from reviewflow.lifecycle import assign
from reviewflow.models import Actor, Record, RecordType


@pytest.fixture
def t0() -> datetime:
    """Fixed base time for ledger entries."""
    return datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def owner() -> Actor:
    return Actor(id="u-owner", name="Oscar Owner", role="staff")


@pytest.fixture
def verifier() -> Actor:
    return Actor(id="u-verifier", name="Vera Verifier", role="staff")


@pytest.fixture
def approver() -> Actor:
    return Actor(id="u-approver", name="Andi Approver", role="manager")


@pytest.fixture
def admin() -> Actor:
    return Actor(id="u-admin", name="Ada Admin", role="admin")


@pytest.fixture
def finance() -> Actor:
    return Actor(id="u-finance", name="Fina Finance", role="finance")


@pytest.fixture
def draft_trip(owner: Actor) -> Record:
    """A trip in Draft with no reviewers bound."""
    return Record(
        id="trip-001",
        record_type=RecordType.TRIP,
        owner_id=owner.id,
        monetary_value=2_500_000,
        attributes={"destination": "Balikpapan"},
    )


@pytest.fixture
def ready_trip(draft_trip: Record, verifier: Actor, approver: Actor) -> Record:
    """A trip in Draft with both reviewer roles bound."""
    record = assign(draft_trip, "verifier", verifier.id)
    return assign(record, "approver", approver.id)
