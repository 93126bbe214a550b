import threading
import unittest
from unittest.mock import Mock, patch

import timeout_decorator
from hamcrest import assert_that, contains_exactly, contains_string, empty, has_item, instance_of, is_, none, not_none, \
    same_instance

from btcommand.conduit.base import StreamIOError
from btcommand.config.config import ConnectionSettings
from btcommand.connector.base import ChannelStrategy, Endpoint, ServiceStrategy, Transport
from btcommand.controller import CONNECTION_LOST_MESSAGE, ConnectionController, ConnectionState
from btcommand.crc8 import checksum
from btcommand.events import DeviceNameEvent, RawPayloadEvent, StateChangedEvent, ToastEvent
from btcommand.protocol.frames import Command, TERMINATE_SENTINEL
from btcommand.support.events import EventSource, QueuedEventSource
from btcommand.support.testing import FakeConduit, debug_timeout

SPP = "00001101-0000-1000-8000-00805F9B34FB"


class FakeTransport(Transport):
    """ hands out the queued conduits to service connections, then fresh ones """

    def __init__(self, *conduits):
        self.conduits = list(conduits)
        self.created = []

    def cancel_discovery(self):
        pass

    def service_conduit(self, endpoint, service_uuid):
        conduit = self.conduits.pop(0) if self.conduits else FakeConduit()
        self.created.append(conduit)
        return conduit


class Recorder:
    """ collects events, and lets a test wait for one to arrive """

    def __init__(self):
        self.events = []
        self.condition = threading.Condition()

    def __call__(self, event):
        with self.condition:
            self.events.append(event)
            self.condition.notify_all()

    def wait_for(self, event):
        with self.condition:
            self.condition.wait_for(lambda: event in self.events)

    def wait_for_type(self, event_type):
        with self.condition:
            self.condition.wait_for(lambda: self.of_type(event_type))

    def states(self):
        return [e.state for e in self.events if isinstance(e, StateChangedEvent)]

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


class ConnectionControllerTest(unittest.TestCase):

    def setUp(self):
        self.events = EventSource()
        self.recorder = Recorder()
        self.events += self.recorder
        self.endpoint = Endpoint("00:11:22:33:44:55", "remote")
        self.log = Mock()

    def controller(self, transport, strategies=None):
        return ConnectionController(transport, self.events, ConnectionSettings(),
                                    strategies or [ServiceStrategy(SPP)], log=self.log)

    def connect_and_wait(self, sut):
        sut.connect(self.endpoint)
        self.recorder.wait_for(StateChangedEvent(ConnectionState.CONNECTED))

    def test_initial_state(self):
        sut = ConnectionController(FakeTransport())
        assert_that(sut.state, is_(ConnectionState.NONE))
        assert_that(sut.connector, is_(none()))
        assert_that(sut.session, is_(none()))
        assert_that(sut.events, instance_of(EventSource))
        assert_that(sut.strategies[0], instance_of(ServiceStrategy))
        assert_that(sut.strategies[1], instance_of(ChannelStrategy))

    def test_state_values(self):
        assert_that([int(s) for s in ConnectionState], is_([0, 1, 2, 3]))

    def test_start_listens(self):
        sut = self.controller(FakeTransport())
        sut.start()
        assert_that(sut.state, is_(ConnectionState.LISTENING))
        assert_that(self.recorder.events, contains_exactly(StateChangedEvent(ConnectionState.LISTENING)))
        self.log.debug.assert_any_call("setState() 0 -> 1")

    def test_stop(self):
        sut = self.controller(FakeTransport())
        sut.start()
        sut.stop()
        assert_that(sut.state, is_(ConnectionState.NONE))
        assert_that(self.recorder.states(), contains_exactly(ConnectionState.LISTENING, ConnectionState.NONE))

    def test_write_when_not_connected(self):
        sut = self.controller(FakeTransport())
        assert_that(sut.write(b"\x01"), is_(False))
        sut.start()
        assert_that(sut.send_command(Command.VOLUME_UP), is_(False))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connect_success(self):
        conduit = FakeConduit()
        sut = self.controller(FakeTransport(conduit))
        sut.start()
        self.connect_and_wait(sut)
        assert_that(sut.state, is_(ConnectionState.CONNECTED))
        assert_that(sut.connector, is_(none()))
        assert_that(sut.session.conduit, is_(same_instance(conduit)))
        assert_that(self.recorder.states(), contains_exactly(
            ConnectionState.LISTENING, ConnectionState.CONNECTING, ConnectionState.CONNECTED))
        assert_that(self.recorder.events, has_item(DeviceNameEvent("remote")))
        sut.stop()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connect_failure_returns_to_listening_once(self):
        sut = self.controller(FakeTransport(FakeConduit(connect_error=StreamIOError("refused by peer"))))
        sut.start()
        sut.connect(self.endpoint)
        self.recorder.wait_for_type(ToastEvent)
        state_changed, toast = self.recorder.events[-2:]
        assert_that(state_changed, is_(StateChangedEvent(ConnectionState.LISTENING)))
        assert_that(toast.text, contains_string("refused by peer"))
        assert_that(sut.state, is_(ConnectionState.LISTENING))
        assert_that(self.recorder.states(), contains_exactly(
            ConnectionState.LISTENING, ConnectionState.CONNECTING, ConnectionState.LISTENING))
        assert_that(sut.connector, is_(none()))
        assert_that(sut.session, is_(none()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connect_twice_cancels_first_attempt(self):
        first = FakeConduit(block_connect=True)
        second = FakeConduit(block_connect=True)
        sut = self.controller(FakeTransport(first, second))
        sut.start()
        sut.connect(self.endpoint)
        first.connect_entered.wait()
        first_connector = sut.connector
        sut.connect(self.endpoint)
        second_connector = sut.connector
        assert_that(first_connector.cancelled, is_(True))
        assert_that(first_connector is second_connector, is_(False))
        first_connector.join()
        assert_that(first.closed, is_(True))
        second.release_connect()
        self.recorder.wait_for(StateChangedEvent(ConnectionState.CONNECTED))
        assert_that(sut.session.conduit, is_(same_instance(second)))
        # the cancelled attempt reports nothing
        assert_that(self.recorder.of_type(ToastEvent), is_(empty()))
        assert_that(self.recorder.states(), contains_exactly(
            ConnectionState.LISTENING, ConnectionState.CONNECTING, ConnectionState.CONNECTING,
            ConnectionState.CONNECTED))
        sut.stop()

    def test_success_from_replaced_connector_is_ignored(self):
        sut = self.controller(FakeTransport())
        with patch('btcommand.controller.Connector') as connector_class:
            sut.connect(self.endpoint)
            stale = sut.connector
            sut.connect(self.endpoint)
        conduit = FakeConduit()
        sut._connector_succeeded(Mock(), conduit)
        assert_that(conduit.closed, is_(True))
        assert_that(sut.state, is_(ConnectionState.CONNECTING))
        assert_that(stale, is_(not_none()))
        assert_that(connector_class.call_count, is_(2))

    def test_failure_from_replaced_connector_is_ignored(self):
        sut = self.controller(FakeTransport())
        with patch('btcommand.controller.Connector'):
            sut.connect(self.endpoint)
        sut._connector_failed(Mock(), StreamIOError("refused"))
        assert_that(sut.state, is_(ConnectionState.CONNECTING))
        assert_that(self.recorder.of_type(ToastEvent), is_(empty()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connection_lost_returns_to_listening(self):
        conduit = FakeConduit()
        sut = self.controller(FakeTransport(conduit))
        sut.start()
        self.connect_and_wait(sut)
        session = sut.session
        conduit.close()
        self.recorder.wait_for(ToastEvent(CONNECTION_LOST_MESSAGE))
        session.join()
        assert_that(sut.state, is_(ConnectionState.LISTENING))
        assert_that(sut.session, is_(none()))
        assert_that(self.recorder.states()[-1], is_(ConnectionState.LISTENING))
        assert_that(len(self.recorder.of_type(ToastEvent)), is_(1))
        assert_that(self.recorder.events[-2:], contains_exactly(
            StateChangedEvent(ConnectionState.LISTENING), ToastEvent(CONNECTION_LOST_MESSAGE)))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_stop_cancels_session_without_loss_notice(self):
        conduit = FakeConduit()
        sut = self.controller(FakeTransport(conduit))
        self.connect_and_wait(sut)
        session = sut.session
        sut.stop()
        session.join()
        assert_that(conduit.writes, contains_exactly(TERMINATE_SENTINEL))
        assert_that(conduit.closed, is_(True))
        assert_that(self.recorder.of_type(ToastEvent), is_(empty()))
        assert_that(self.recorder.states()[-1], is_(ConnectionState.NONE))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_adopting_a_conduit_replaces_session(self):
        sut = self.controller(FakeTransport())
        first = FakeConduit()
        second = FakeConduit()
        sut.connected(first, Endpoint("/dev/rfcomm0"))
        sut.connected(second, self.endpoint)
        assert_that(first.closed, is_(True))
        assert_that(sut.session.conduit, is_(same_instance(second)))
        assert_that(self.recorder.of_type(DeviceNameEvent), contains_exactly(
            DeviceNameEvent("/dev/rfcomm0"), DeviceNameEvent("remote")))
        sut.stop()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_write_and_send_command(self):
        conduit = FakeConduit()
        sut = self.controller(FakeTransport(conduit))
        self.connect_and_wait(sut)
        assert_that(sut.send_command(Command.MOUSE_MOVE), is_(True))
        assert_that(sut.write(b"\x01\x02"), is_(True))
        assert_that(conduit.writes, contains_exactly(b"\x03", b"\x01\x02"))
        sut.stop()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_write_does_not_hold_controller_lock(self):
        conduit = FakeConduit()
        sut = self.controller(FakeTransport(conduit))
        self.connect_and_wait(sut)
        writing = threading.Event()
        release = threading.Event()

        def blocking_write(data):
            writing.set()
            release.wait()
            return True
        sut.session.write = blocking_write
        writer = threading.Thread(target=sut.write, args=(b"\x01",))
        writer.start()
        writing.wait()
        sut.start()     # a transition completes while the write is in progress
        assert_that(sut.state, is_(ConnectionState.LISTENING))
        release.set()
        writer.join()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_stop_while_write_is_blocked(self):
        conduit = FakeConduit(block_write=True)
        sut = self.controller(FakeTransport(conduit))
        self.connect_and_wait(sut)
        results = []
        writer = threading.Thread(target=lambda: results.append(sut.write(b"\x01")))
        writer.start()
        conduit.write_entered.wait()
        sut.stop()
        assert_that(sut.state, is_(ConnectionState.NONE))
        writer.join()
        assert_that(results, contains_exactly(False))
        assert_that(conduit.closed, is_(True))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_end_to_end_handshake_and_data(self):
        conduit = FakeConduit()
        sut = self.controller(FakeTransport(conduit))
        sut.start()
        self.connect_and_wait(sut)

        config = b"\xa5\x55\x00\x00"
        conduit.feed(config)
        self.recorder.wait_for(RawPayloadEvent(config))
        assert_that(conduit.writes, contains_exactly(bytes([0xA5, 0x55, 0x01, 0x00, 0xA2])))
        assert_that(sut.session.handshake.awaiting_config, is_(False))

        frame = bytearray(61)
        frame[0:4] = b"\xa5\xaa\x3a\x07"
        frame[60] = checksum(frame[:59])
        conduit.feed(bytes(frame))
        self.recorder.wait_for(RawPayloadEvent(bytes(frame)))
        ack = conduit.writes[1]
        assert_that(ack, is_(bytes([0xA5, 0xAA, 0x02, 0x07, 0x00, checksum(ack[:5])])))
        assert_that(len(conduit.writes), is_(2))
        assert_that(sut.session.frame_count, is_(1))
        sut.stop()


class QueuedNotificationTest(unittest.TestCase):

    @timeout_decorator.timeout(debug_timeout(5))
    def test_events_delivered_in_order_on_publishing_thread(self):
        events = QueuedEventSource()
        received = []
        events += lambda e: received.append((e, threading.current_thread()))
        conduit = FakeConduit()
        sut = ConnectionController(FakeTransport(conduit), events, strategies=[ServiceStrategy(SPP)], log=Mock())
        sut.start()
        sut.connect(Endpoint("00:11:22:33:44:55", "remote"))
        while sut.state != ConnectionState.CONNECTED:
            threading.Event().wait(0.01)
        events.publish()
        assert_that([e for e, t in received], contains_exactly(
            StateChangedEvent(ConnectionState.LISTENING), StateChangedEvent(ConnectionState.CONNECTING),
            DeviceNameEvent("remote"), StateChangedEvent(ConnectionState.CONNECTED)))
        assert_that({t for e, t in received}, is_({threading.current_thread()}))
        sut.stop()


if __name__ == '__main__':  # pragma: no cover
    unittest.main()
