import asyncio
import random
from datetime import datetime

import pytest

from ledgerbot.errors import AccessDenied, NotFound, ValidationFailure
from ledgerbot.models.schemas import MonitoringOutcome, Subscription


def _set(registrar, group_id, profile_id=1, user_id=1):
    return asyncio.run(registrar.set_active_group(group_id, profile_id, user_id))


def _active(accounts, profile_id=1):
    return [g.group_id for g in accounts.list_monitored_groups(profile_id) if g.is_active]


def test_first_selection_creates_row(registrar, accounts):
    group, outcome = _set(registrar, "g1")
    assert outcome is MonitoringOutcome.CREATED
    assert group.group_id == "g1" and group.name == "Obra Casa" and group.is_active
    assert _active(accounts) == ["g1"]


def test_selecting_twice_reports_already_active(registrar, accounts):
    _set(registrar, "g1")
    group, outcome = _set(registrar, "g1")
    assert outcome is MonitoringOutcome.ALREADY_ACTIVE
    rows = accounts.list_monitored_groups(1)
    assert len(rows) == 1 and rows[0].id == group.id


def test_switching_groups_keeps_a_single_active_row(registrar, accounts):
    _set(registrar, "g1")
    _, outcome = _set(registrar, "g2")
    assert outcome is MonitoringOutcome.CREATED
    assert _active(accounts) == ["g2"]

    _, outcome = _set(registrar, "g1")
    assert outcome is MonitoringOutcome.REACTIVATED
    assert _active(accounts) == ["g1"]
    assert len(accounts.list_monitored_groups(1)) == 2


def test_any_sequence_leaves_at_most_one_active_group(registrar, accounts):
    rng = random.Random(7)
    for _ in range(40):
        _set(registrar, rng.choice(["g1", "g2"]))
        assert len(_active(accounts)) <= 1
    assert len(accounts.list_monitored_groups(1)) <= 2


def test_requires_active_subscription(registrar):
    with pytest.raises(AccessDenied):
        _set(registrar, "g1", profile_id=2, user_id=2)


def test_expired_subscription_is_denied(registrar, accounts):
    accounts.add_subscription(Subscription(user_id=2, status="active", expires_at=datetime(2000, 1, 1)))
    with pytest.raises(AccessDenied):
        _set(registrar, "g3", profile_id=2, user_id=2)


def test_admin_email_bypasses_subscription(registrar):
    _, outcome = _set(registrar, "g3", profile_id=3, user_id=3)
    assert outcome is MonitoringOutcome.CREATED


def test_requester_must_participate_in_the_group(registrar, accounts):
    with pytest.raises(NotFound):
        _set(registrar, "g3")
    with pytest.raises(NotFound):
        _set(registrar, "does-not-exist")
    assert accounts.list_monitored_groups(1) == []


def test_profile_must_belong_to_requester(registrar):
    with pytest.raises(AccessDenied):
        _set(registrar, "g1", profile_id=2, user_id=1)
    with pytest.raises(NotFound):
        _set(registrar, "g1", profile_id=99, user_id=1)
    with pytest.raises(NotFound):
        _set(registrar, "g1", profile_id=1, user_id=99)


@pytest.mark.parametrize("group_id", ["", "   ", None])
def test_blank_group_id_is_rejected(registrar, group_id):
    with pytest.raises(ValidationFailure):
        _set(registrar, group_id)


def test_available_groups_for_requester(registrar):
    groups = asyncio.run(registrar.available_groups(1))
    assert [g.group_id for g in groups] == ["g2", "g1"]


def test_active_monitoring_requires_owner_plan(registrar, accounts):
    _set(registrar, "g1")
    assert registrar.active_monitoring_for("g1").profile_id == 1
    assert registrar.active_monitoring_for("g2") is None

    accounts.activate_group("g3", "Trabalho", 2)
    assert registrar.active_monitoring_for("g3") is None
