import unittest
from unittest.mock import patch

from hamcrest import assert_that, instance_of, is_

from btcommand.config.config import ConnectionSettings
from btcommand.connector.rfcommconn import RfcommTransport
from btcommand.connector.serialconn import SerialTransport
from btcommand.events import RawPayloadEvent, ToastEvent
from btcommand.monitor import is_device_address, log_event, monitor, transport_for


class MonitorTest(unittest.TestCase):

    def test_device_address(self):
        assert_that(is_device_address("00:11:22:33:44:55"), is_(True))
        assert_that(is_device_address("COM4"), is_(False))

    def test_transport_for_address(self):
        settings = ConnectionSettings()
        assert_that(transport_for("00:11:22:33:44:55", settings), instance_of(RfcommTransport))
        assert_that(transport_for("/dev/rfcomm0", settings), instance_of(SerialTransport))

    @patch('btcommand.monitor.logger')
    def test_log_event(self, logger):
        log_event(RawPayloadEvent(b"\xa5\x55"))
        logger.info.assert_called_once_with("received 2 bytes: a555")
        log_event(ToastEvent("hi"))
        logger.info.assert_called_with(ToastEvent("hi"))

    def test_usage(self):
        with patch('builtins.print') as printer:
            assert_that(monitor([]), is_(2))
            printer.assert_called_once()

    @patch('btcommand.monitor.time.sleep', side_effect=KeyboardInterrupt)
    @patch('btcommand.monitor.ConnectionController')
    @patch('btcommand.monitor.logging.basicConfig')
    def test_runs_until_interrupted(self, basic_config, controller_class, sleep):
        assert_that(monitor(["/dev/rfcomm0"]), is_(0))
        controller = controller_class.return_value
        controller.start.assert_called_once_with()
        assert_that(controller.connect.call_args[0][0].address, is_("/dev/rfcomm0"))
        controller.stop.assert_called_once_with()


if __name__ == '__main__':  # pragma: no cover
    unittest.main()
