import asyncio
import threading
from datetime import timedelta

from ledgerbot.bot.reaper import PendingExpenseReaper
from ledgerbot.models.schemas import PendingExpense


def _add(ledger, clock, message_id, **overrides):
    data = dict(
        value=35.0,
        description="Lanche",
        suggested_category_id=1,
        source_message_id=message_id,
        source_group_id="g1",
        profile_id=1,
        created_at=clock.now,
        expires_at=clock.now + timedelta(minutes=5),
    )
    data.update(overrides)
    return ledger.create_pending(PendingExpense(**data))


def test_expired_record_is_confirmed_with_suggested_category(ledger, clock):
    pending = _add(ledger, clock, "m1")
    reaper = PendingExpenseReaper(ledger, clock=clock)

    assert reaper.reap() == []
    clock.advance(minutes=5)
    confirmed = reaper.reap()

    assert [e.category_id for e in confirmed] == [1]
    assert confirmed[0].source_message_id == "m1"
    assert ledger.get_pending(pending.id) is None


def test_open_records_are_left_alone(ledger, clock):
    _add(ledger, clock, "m1")
    later = _add(ledger, clock, "m2", expires_at=clock.now + timedelta(minutes=30))
    clock.advance(minutes=10)

    PendingExpenseReaper(ledger, clock=clock).reap()

    assert [p.id for p in ledger.list_pending()] == [later.id]
    assert len(ledger.get_expenses()) == 1


def test_expired_category_reply_falls_back_to_suggestion(ledger, clock):
    pending = _add(ledger, clock, "m1", status="awaiting_category_reply", suggested_category_id=2)
    clock.advance(minutes=6)

    confirmed = PendingExpenseReaper(ledger, clock=clock).reap()
    assert confirmed[0].category_id == 2
    assert ledger.get_pending(pending.id) is None


def test_records_without_usable_suggestion_are_discarded(ledger, clock):
    _add(ledger, clock, "m1", suggested_category_id=None)
    _add(ledger, clock, "m2", suggested_category_id=404)
    _add(ledger, clock, "m3", value=None, status="awaiting_context")
    clock.advance(minutes=6)

    assert PendingExpenseReaper(ledger, clock=clock).reap() == []
    assert ledger.list_pending() == []
    assert ledger.get_expenses() == []


def test_background_loop_reaps_off_the_event_loop_thread(ledger, clock):
    _add(ledger, clock, "m1")
    clock.advance(minutes=6)
    passes = []

    class RecordingReaper(PendingExpenseReaper):
        def reap(self):
            passes.append(threading.get_ident())
            return super().reap()

    reaper = RecordingReaper(ledger, interval_seconds=3600, clock=clock)

    async def run():
        reaper.start()
        for _ in range(200):
            if ledger.get_expenses():
                break
            await asyncio.sleep(0.01)
        await reaper.stop()
        return threading.get_ident()

    loop_thread = asyncio.run(run())
    assert len(ledger.get_expenses()) == 1
    assert passes and loop_thread not in passes
