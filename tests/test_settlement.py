import asyncio
import threading
from datetime import datetime, timedelta

from portal.payments import settlement
from portal.payments.settlement import SettlementBroker, wait_for_settlement


def test_wait_returns_when_already_settled():
    source = SettlementBroker()
    outcome = asyncio.run(
        wait_for_settlement(
            "req-1", lambda: settlement.OUTCOME_SETTLED, None, poll_interval=0.01, timeout=1, source=source
        )
    )
    assert outcome == settlement.OUTCOME_SETTLED
    assert source.subscriber_count("req-1") == 0


def test_publish_wakes_waiter_before_poll_interval():
    source = SettlementBroker()
    state = {"outcome": None}

    async def scenario():
        waiter = asyncio.create_task(
            wait_for_settlement(
                "req-2", lambda: state["outcome"], None, poll_interval=30, timeout=5, source=source
            )
        )
        while source.subscriber_count("req-2") == 0:
            await asyncio.sleep(0.01)
        state["outcome"] = settlement.OUTCOME_SETTLED
        threading.Thread(target=source.publish, args=("req-2",)).start()
        return await asyncio.wait_for(waiter, timeout=2)

    assert asyncio.run(scenario()) == settlement.OUTCOME_SETTLED


def test_wait_stops_at_expiry():
    expired = datetime.utcnow() - timedelta(seconds=1)
    outcome = asyncio.run(
        wait_for_settlement("req-3", lambda: None, expired, poll_interval=0.01, timeout=1, source=SettlementBroker())
    )
    assert outcome == settlement.OUTCOME_EXPIRED


def test_wait_times_out():
    outcome = asyncio.run(
        wait_for_settlement("req-4", lambda: None, None, poll_interval=0.01, timeout=0.05, source=SettlementBroker())
    )
    assert outcome == settlement.OUTCOME_TIMEOUT


def test_wait_stops_on_disconnect():
    async def disconnected():
        return True

    outcome = asyncio.run(
        wait_for_settlement(
            "req-5",
            lambda: None,
            None,
            poll_interval=0.01,
            timeout=5,
            is_disconnected=disconnected,
            source=SettlementBroker(),
        )
    )
    assert outcome == settlement.OUTCOME_DISCONNECTED


def test_cancel_releases_subscription():
    source = SettlementBroker()

    async def scenario():
        task = asyncio.create_task(
            wait_for_settlement("req-6", lambda: None, None, poll_interval=30, timeout=60, source=source)
        )
        while source.subscriber_count("req-6") == 0:
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(scenario())
    assert source.subscriber_count("req-6") == 0


def test_publish_without_subscribers_is_noop():
    assert SettlementBroker().publish("nobody") == 0


def test_wait_reports_review_outcome():
    outcome = asyncio.run(
        wait_for_settlement(
            "req-7",
            lambda: settlement.OUTCOME_UNDER_REVIEW,
            None,
            poll_interval=0.01,
            timeout=1,
            source=SettlementBroker(),
        )
    )
    assert outcome == settlement.OUTCOME_UNDER_REVIEW
