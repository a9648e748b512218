import asyncio
import decimal
import json
from datetime import datetime, timezone

import pytest

from lattice_watch.config import MonitorSettings
from lattice_watch.connection_state import ConnectionState
from lattice_watch.exceptions import (
    MessageDecodeError,
    MessageFormatError,
    MonitorConnectionError,
    MonitorError,
    ReconnectExhaustedError,
)
from lattice_watch.messages import ReconnectingEvent
from lattice_watch.monitor import ConfirmationMonitor, create_monitor
from tests.helpers.monitor_fakes import (
    ONE_NANO_RAW,
    FakeConnection,
    FakeConnector,
    confirmation_frame,
    wait_until,
)

WATCHED = "nano_1watched"
SENDER = "nano_3sender"
STRANGER = "nano_1stranger"


def make_monitor(connector, accounts=(WATCHED,), **overrides):
    options = {"reconnect_initial_delay_seconds": 0.001}
    options.update(overrides)
    settings = MonitorSettings(ws_url="ws://node.test/ws", accounts=accounts, **options)
    return ConfirmationMonitor(settings, connection_factory=connector)


def record(monitor):
    seen = {
        "payment": [],
        "received": [],
        "error": [],
        "reconnecting": [],
        "connected": 0,
        "disconnected": 0,
    }

    def bump(name):
        def _bump():
            seen[name] += 1

        return _bump

    monitor.on_payment(seen["payment"].append)
    monitor.on_received(seen["received"].append)
    monitor.on_error(seen["error"].append)
    monitor.on_reconnecting(seen["reconnecting"].append)
    monitor.on_connected(bump("connected"))
    monitor.on_disconnected(bump("disconnected"))
    return seen


async def shutdown(monitor):
    monitor.stop()
    await monitor.wait_closed()


def payment_to(account, **kwargs):
    return confirmation_frame(subtype="send", account=SENDER, link_as_account=account, **kwargs)


@pytest.mark.asyncio
async def test_start_subscribes_all_accounts_in_one_request():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection), accounts=("nano_b", "nano_a"))
    seen = record(monitor)

    await monitor.start()

    assert monitor.state is ConnectionState.OPEN
    assert monitor.is_running
    assert seen["connected"] == 1
    assert connection.sent_payloads() == [
        {"action": "subscribe", "topic": "confirmation", "options": {"accounts": ["nano_a", "nano_b"]}}
    ]
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_start_without_accounts_sends_nothing():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection), accounts=())

    await monitor.start()

    assert monitor.state is ConnectionState.OPEN
    assert connection.sent_messages == []
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_start_twice_opens_one_connection():
    connector = FakeConnector(FakeConnection(), FakeConnection())
    monitor = make_monitor(connector)

    await monitor.start()
    await monitor.start()

    assert connector.calls == 1
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_stop_closes_connection_and_reaches_stopped():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    monitor.stop()
    assert monitor.state is ConnectionState.CLOSING
    await monitor.wait_closed()

    assert monitor.state is ConnectionState.STOPPED
    assert not monitor.is_running
    assert connection.close_code == 1000
    assert seen["disconnected"] == 1
    assert seen["reconnecting"] == []


@pytest.mark.asyncio
async def test_stop_before_start_is_harmless():
    connector = FakeConnector()
    monitor = make_monitor(connector)

    monitor.stop()
    monitor.stop()
    await monitor.wait_closed()

    assert monitor.state is ConnectionState.STOPPED
    assert connector.calls == 0


@pytest.mark.asyncio
async def test_add_account_while_open_sends_incremental_subscribe():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    await monitor.start()

    monitor.add_account("nano_new")
    monitor.add_account(WATCHED)
    await wait_until(lambda: len(connection.sent_messages) == 2)
    await asyncio.sleep(0.01)

    assert len(connection.sent_messages) == 2
    assert connection.sent_payloads()[1]["options"]["accounts"] == ["nano_new"]
    assert monitor.accounts == frozenset({WATCHED, "nano_new"})
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_add_account_before_start_is_part_of_bulk_subscribe():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection), accounts=())

    monitor.add_account(WATCHED)
    await monitor.start()

    assert connection.sent_payloads()[0]["options"]["accounts"] == [WATCHED]
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_payment_to_watched_account_is_reported():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    connection.push(payment_to(WATCHED, amount=ONE_NANO_RAW, block_hash="ABC123"))
    await wait_until(lambda: seen["payment"])

    event = seen["payment"][0]
    assert event.hash == "ABC123"
    assert event.from_account == SENDER
    assert event.to_account == WATCHED
    assert event.amount == ONE_NANO_RAW
    assert event.amount_display == "1"
    assert event.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert seen["received"] == []
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_receive_by_watched_account_is_reported():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    connection.push(confirmation_frame(subtype="receive", account=WATCHED, amount="2500000000000000000000000000000"))
    await wait_until(lambda: seen["received"])

    event = seen["received"][0]
    assert event.account == WATCHED
    assert event.amount_display == "2.5"
    assert seen["payment"] == []
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_unwatched_and_removed_accounts_are_not_reported():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection), accounts=(WATCHED, "nano_gone"))
    seen = record(monitor)
    await monitor.start()

    monitor.remove_account("nano_gone")
    connection.push(payment_to(STRANGER, block_hash="H1"))
    connection.push(payment_to("nano_gone", block_hash="H2"))
    connection.push(confirmation_frame(subtype="receive", account=STRANGER, block_hash="H3"))
    connection.push(payment_to(WATCHED, block_hash="H4"))
    await wait_until(lambda: seen["payment"])

    assert [event.hash for event in seen["payment"]] == ["H4"]
    assert seen["received"] == []
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_events_follow_frame_order():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    for block_hash in ("H1", "H2", "H3"):
        connection.push(payment_to(WATCHED, block_hash=block_hash))
    await wait_until(lambda: len(seen["payment"]) == 3)

    assert [event.hash for event in seen["payment"]] == ["H1", "H2", "H3"]
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_custom_converter_formats_amount():
    connection = FakeConnection()
    monitor = ConfirmationMonitor(
        MonitorSettings(ws_url="ws://node.test/ws", accounts=(WATCHED,)),
        converter=lambda raw: f"{len(raw)} digits",
        connection_factory=FakeConnector(connection),
    )
    seen = record(monitor)
    await monitor.start()

    connection.push(payment_to(WATCHED))
    await wait_until(lambda: seen["payment"])

    assert seen["payment"][0].amount_display == "31 digits"
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_undecodable_frame_reports_error_and_keeps_connection():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    connection.push("not json{")
    connection.push(payment_to(WATCHED))
    await wait_until(lambda: seen["payment"])

    assert len(seen["error"]) == 1
    assert isinstance(seen["error"][0], MessageDecodeError)
    assert seen["error"][0].frame == "not json{"
    assert monitor.state is ConnectionState.OPEN
    assert seen["disconnected"] == 0
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_malformed_confirmation_reports_format_error():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    connection.push_json({"topic": "confirmation", "time": "1", "message": {}})
    connection.push(payment_to(WATCHED, time="yesterday"))
    connection.push(payment_to(WATCHED, block_hash="GOOD"))
    await wait_until(lambda: seen["payment"])

    assert [type(error) for error in seen["error"]] == [MessageFormatError, MessageFormatError]
    assert seen["error"][1].field == "time"
    assert [event.hash for event in seen["payment"]] == ["GOOD"]
    assert monitor.state is ConnectionState.OPEN
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_converter_failure_is_reported_as_format_error():
    def reject(raw):
        raise ValueError("bad amount")

    connection = FakeConnection()
    monitor = ConfirmationMonitor(
        MonitorSettings(ws_url="ws://node.test/ws", accounts=(WATCHED,)),
        converter=reject,
        connection_factory=FakeConnector(connection),
    )
    seen = record(monitor)
    await monitor.start()

    connection.push(payment_to(WATCHED))
    await wait_until(lambda: seen["error"])

    error = seen["error"][0]
    assert isinstance(error, MessageFormatError)
    assert isinstance(error.__cause__, ValueError)
    assert seen["payment"] == []
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_non_confirmation_frames_are_ignored():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    connection.push_json({"ack": "subscribe", "time": "1700000000000"})
    connection.push("[1, 2, 3]")
    connection.push(confirmation_frame(subtype="send", account=SENDER, link_as_account=WATCHED, topic="votes"))
    connection.push(payment_to(WATCHED, block_hash="LAST"))
    await wait_until(lambda: seen["payment"])

    assert [event.hash for event in seen["payment"]] == ["LAST"]
    assert seen["error"] == []
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_unexpected_close_reconnects_and_resubscribes():
    first = FakeConnection()
    second = FakeConnection()
    monitor = make_monitor(FakeConnector(first, second))
    seen = record(monitor)
    monitor.on_reconnecting(lambda event: monitor.add_account("nano_late"))
    await monitor.start()

    first.drop()
    await wait_until(lambda: second.sent_messages)

    assert seen["reconnecting"] == [ReconnectingEvent(attempt=1, delay=0.001)]
    assert seen["disconnected"] == 1
    assert seen["connected"] == 2
    assert len(seen["error"]) == 1
    assert isinstance(seen["error"][0], MonitorConnectionError)
    assert second.sent_payloads() == [
        {"action": "subscribe", "topic": "confirmation", "options": {"accounts": [WATCHED, "nano_late"]}}
    ]
    assert monitor.state is ConnectionState.OPEN
    assert monitor.reconnect_attempts == 0
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_failed_first_connect_raises_and_schedules_reconnect():
    connection = FakeConnection()
    connector = FakeConnector(OSError("connection refused"), connection)
    monitor = make_monitor(connector)
    seen = record(monitor)

    with pytest.raises(MonitorConnectionError):
        await monitor.start()

    assert seen["reconnecting"] == [ReconnectingEvent(attempt=1, delay=0.001)]
    assert seen["disconnected"] == 1
    await wait_until(lambda: monitor.state is ConnectionState.OPEN)
    assert connector.calls == 2
    assert connection.sent_payloads()[0]["options"]["accounts"] == [WATCHED]
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_stop_cancels_pending_reconnect():
    connector = FakeConnector(OSError("connection refused"))
    monitor = make_monitor(connector, reconnect_initial_delay_seconds=5.0)

    with pytest.raises(MonitorConnectionError):
        await monitor.start()
    assert monitor.state is ConnectionState.RECONNECTING

    monitor.stop()
    await monitor.wait_closed()

    assert monitor.state is ConnectionState.STOPPED
    assert connector.calls == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_reconnect_attempts():
    connector = FakeConnector()
    monitor = make_monitor(connector)
    seen = record(monitor)

    with pytest.raises(MonitorConnectionError):
        await monitor.start()
    await wait_until(lambda: not monitor.is_running, timeout=5.0)
    await monitor.wait_closed()

    assert monitor.state is ConnectionState.STOPPED
    assert [event.attempt for event in seen["reconnecting"]] == list(range(1, 11))
    assert [event.delay for event in seen["reconnecting"]] == pytest.approx([0.001 * 2**i for i in range(10)])
    assert connector.calls == 11
    exhausted = [error for error in seen["error"] if isinstance(error, ReconnectExhaustedError)]
    assert len(exhausted) == 1
    assert exhausted[0].attempts == 10
    assert str(exhausted[0]) == "Max reconnect attempts reached"


@pytest.mark.asyncio
async def test_start_after_exhaustion_resets_attempts():
    connector = FakeConnector()
    monitor = make_monitor(connector, max_reconnect_attempts=2)

    with pytest.raises(MonitorConnectionError):
        await monitor.start()
    await wait_until(lambda: not monitor.is_running)
    await monitor.wait_closed()

    connector.outcomes.append(FakeConnection())
    await monitor.start()

    assert monitor.state is ConnectionState.OPEN
    assert monitor.reconnect_attempts == 0
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_stop_from_payment_observer_halts_delivery():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    payments = []

    def on_payment(event):
        payments.append(event)
        monitor.stop()

    monitor.on_payment(on_payment)
    await monitor.start()

    connection.push(payment_to(WATCHED, block_hash="H1"))
    connection.push(payment_to(WATCHED, block_hash="H2"))
    await wait_until(lambda: monitor.state is ConnectionState.STOPPED)
    await monitor.wait_closed()

    assert [event.hash for event in payments] == ["H1"]
    assert not monitor.is_running


@pytest.mark.asyncio
async def test_keepalive_pings_while_open():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection), ping_interval_seconds=0.01)
    await monitor.start()

    await wait_until(lambda: connection.ping_calls >= 2)

    await shutdown(monitor)
    pings = connection.ping_calls
    await asyncio.sleep(0.03)
    assert connection.ping_calls == pings


@pytest.mark.asyncio
async def test_stop_during_handshake_discards_connection():
    connection = FakeConnection()
    gate = asyncio.Event()

    async def slow_connector():
        await gate.wait()
        return connection

    monitor = make_monitor(slow_connector)
    seen = record(monitor)
    start_task = asyncio.create_task(monitor.start())
    await wait_until(lambda: monitor.state is ConnectionState.CONNECTING)

    monitor.stop()
    gate.set()
    await start_task
    await monitor.wait_closed()

    assert monitor.state is ConnectionState.STOPPED
    assert connection.close_code == 1000
    assert connection.sent_messages == []
    assert seen["connected"] == 0


def test_create_monitor_applies_overrides():
    monitor = create_monitor("ws://other.test/ws", ["nano_x", "nano_y"])

    assert monitor.settings.ws_url == "ws://other.test/ws"
    assert monitor.accounts == frozenset({"nano_x", "nano_y"})
    assert monitor.state is ConnectionState.IDLE


def test_create_monitor_keeps_settings_without_overrides():
    settings = MonitorSettings(ws_url="ws://base.test/ws", accounts=("nano_x",), ping_interval_seconds=5.0)

    monitor = create_monitor(settings=settings)

    assert monitor.settings == settings


@pytest.mark.asyncio
async def test_concurrent_restart_opens_one_connection():
    connector = FakeConnector(FakeConnection(), FakeConnection(), FakeConnection())
    monitor = make_monitor(connector)
    await monitor.start()

    monitor.stop()
    assert monitor.state is ConnectionState.CLOSING
    await asyncio.gather(monitor.start(), monitor.start())

    assert connector.calls == 2
    assert monitor.state is ConnectionState.OPEN
    await shutdown(monitor)
    assert monitor.state is ConnectionState.STOPPED


@pytest.mark.asyncio
async def test_stop_during_pending_restart_keeps_monitor_stopped():
    connector = FakeConnector(FakeConnection(), FakeConnection())
    monitor = make_monitor(connector)
    await monitor.start()
    monitor.stop()

    restart = asyncio.create_task(monitor.start())
    await asyncio.sleep(0)
    monitor.stop()
    await restart
    await monitor.wait_closed()

    assert connector.calls == 1
    assert not monitor.is_running
    assert monitor.state is ConnectionState.STOPPED


@pytest.mark.asyncio
async def test_converter_arithmetic_error_is_reported_and_reading_continues():
    def fragile(raw):
        if raw == "13":
            raise decimal.InvalidOperation("unlucky amount")
        return raw

    connection = FakeConnection()
    monitor = ConfirmationMonitor(
        MonitorSettings(ws_url="ws://node.test/ws", accounts=(WATCHED,)),
        converter=fragile,
        connection_factory=FakeConnector(connection),
    )
    seen = record(monitor)
    await monitor.start()

    connection.push(payment_to(WATCHED, amount="13", block_hash="BAD"))
    connection.push(payment_to(WATCHED, amount="14", block_hash="GOOD"))
    await wait_until(lambda: seen["payment"])

    assert [event.hash for event in seen["payment"]] == ["GOOD"]
    assert len(seen["error"]) == 1
    error = seen["error"][0]
    assert isinstance(error, MonitorError)
    assert not isinstance(error, MessageFormatError)
    assert isinstance(error.__cause__, ArithmeticError)
    assert monitor.state is ConnectionState.OPEN
    assert seen["disconnected"] == 0
    await shutdown(monitor)


@pytest.mark.asyncio
async def test_mistyped_fields_on_unwatched_frames_are_not_reported():
    connection = FakeConnection()
    monitor = make_monitor(FakeConnector(connection))
    seen = record(monitor)
    await monitor.start()

    loose = json.loads(payment_to(STRANGER, block_hash="LOOSE"))
    loose["time"] = 1700000000000
    loose["message"]["amount"] = 7
    connection.push_json(loose)
    connection.push(payment_to(WATCHED, block_hash="GOOD"))
    await wait_until(lambda: seen["payment"])

    assert seen["error"] == []
    assert [event.hash for event in seen["payment"]] == ["GOOD"]
    await shutdown(monitor)


def test_add_account_on_open_stream_outside_event_loop_raises():
    monitor = make_monitor(FakeConnector())
    monitor._state = ConnectionState.OPEN

    with pytest.raises(RuntimeError):
        monitor.add_account("nano_new")

    assert "nano_new" in monitor.accounts
