"""
Unit Tests for the responder daemon

Responders are replaced by fakes so the shutdown policy can be exercised
without touching the network.
"""

import logging
import pytest
from unittest.mock import patch

from udp_responder.config_loader import ListenerConfig
from udp_responder.daemon import (
    FAILURE_BANNER,
    ResponderDaemon,
    load_config,
    log_failure,
    main,
    parse_args,
    run_daemon,
)
from udp_responder.port_responder import BindError, ReceiveError, SendError


class FakeResponder:
    """Stand-in for PortResponder recording what the daemon did to it"""

    def __init__(self, port, config, bind_error=False, run_error=None):
        self.port = port
        self.config = config
        self.bind_error = bind_error
        self.run_error = run_error
        self.bound = False
        self.closed = False

    def bind(self):
        if self.bind_error:
            raise BindError(self.port, "Address already in use")
        self.bound = True

    def run(self):
        if self.run_error is not None:
            raise self.run_error

    def close(self):
        self.closed = True


def make_factory(created, failing_bind=(), run_errors=None):
    run_errors = run_errors or {}

    def factory(port, config):
        responder = FakeResponder(port, config,
                                  bind_error=port in failing_bind,
                                  run_error=run_errors.get(port))
        created[port] = responder
        return responder

    return factory


@pytest.fixture
def config():
    return ListenerConfig(port_range_start=2600, port_range_end=2602)


class TestBindAll:

    def test_binds_every_port(self, config):
        created = {}
        daemon = ResponderDaemon(config, make_factory(created))

        assert daemon.bind_all() is True
        assert sorted(daemon.responders) == [2600, 2601, 2602]
        assert all(r.bound for r in created.values())

    def test_bind_failure_stops_startup(self, config, caplog):
        created = {}
        daemon = ResponderDaemon(config, make_factory(created, failing_bind={2601}))

        assert daemon.run() == 1
        assert 2602 not in created
        assert created[2600].closed
        assert FAILURE_BANNER in caplog.text

    def test_bind_failure_isolated(self, config):
        created = {}
        isolated = ListenerConfig(port_range_start=2600, port_range_end=2602, isolate_failures=True)
        daemon = ResponderDaemon(isolated, make_factory(created, failing_bind={2601}))

        assert daemon.bind_all() is True
        assert sorted(daemon.responders) == [2600, 2602]

    def test_nothing_bound_is_a_failure(self):
        isolated = ListenerConfig(port_range_start=2600, port_range_end=2601, isolate_failures=True)
        daemon = ResponderDaemon(isolated, make_factory({}, failing_bind={2600, 2601}))

        assert daemon.bind_all() is False


class TestWait:

    def _bound_daemon(self, config, created):
        daemon = ResponderDaemon(config, make_factory(created))
        daemon.bind_all()
        return daemon

    def test_first_failure_ends_serving(self, config, caplog):
        created = {}
        daemon = self._bound_daemon(config, created)
        daemon.completions.put((2601, ReceiveError(2601, "receive failed: boom")))

        assert daemon.wait() == 1
        assert created[2601].closed
        assert not created[2600].closed

        daemon.shutdown()
        assert created[2600].closed
        assert "Guru Meditation: Port 2601: receive failed: boom" in caplog.text

    def test_isolated_failure_keeps_other_ports(self, caplog):
        created = {}
        isolated = ListenerConfig(port_range_start=2600, port_range_end=2601, isolate_failures=True)
        daemon = self._bound_daemon(isolated, created)
        daemon.completions.put((2600, SendError(2600, "send failed")))
        daemon.completions.put((2601, ReceiveError(2601, "receive failed")))

        assert daemon.wait() == 1
        assert "Port 2600 dropped, 1 port(s) still serving" in caplog.text
        assert "All responders have stopped" in caplog.text

    def test_serve_reports_failure_on_channel(self, config):
        error = ReceiveError(2600, "receive failed")
        responder = FakeResponder(2600, config, run_error=error)
        daemon = ResponderDaemon(config)

        daemon._serve(2600, responder)

        assert daemon.completions.get_nowait() == (2600, error)

    def test_threads_report_to_orchestrator(self, config):
        created = {}
        errors = {port: SendError(port, "send failed") for port in config.ports}
        daemon = ResponderDaemon(config, make_factory(created, run_errors=errors))

        assert daemon.run() == 1
        assert all(r.closed for r in created.values())


class TestLogFailure:

    def test_amiga_style_with_traceback(self, caplog):
        try:
            raise BindError(2600, "Permission denied")
        except BindError as e:
            log_failure(e)

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.getMessage() == (
            "Software Failure. Press left mouse button to continue.\n"
            "Guru Meditation: Port 2600: Permission denied"
        )
        assert record.exc_info[0] is BindError


class TestCommandLine:

    @pytest.mark.parametrize("token", ["DEBUG", "debug", "DeBuG"])
    def test_debug_token_enables_debug(self, token):
        with patch.dict("os.environ", {}, clear=True):
            args = parse_args([token])
            assert load_config(args).debug_enabled is True

    def test_no_token_leaves_debug_off(self):
        with patch.dict("os.environ", {}, clear=True):
            args = parse_args([])
            assert load_config(args).debug_enabled is False

    def test_unknown_token_is_ignored(self):
        with patch.dict("os.environ", {}, clear=True):
            assert load_config(parse_args(["verbose"])).debug_enabled is False

    def test_config_file_option(self, tmp_path):
        path = tmp_path / "responder.yaml"
        path.write_text("listener:\n  port_range_start: 3000\n  port_range_end: 3001\n")

        config = load_config(parse_args(["--config", str(path), "DEBUG"]))

        assert config.ports == range(3000, 3002)
        assert config.debug_enabled is True


class TestRunDaemon:

    def test_invalid_config_exits_1(self):
        assert run_daemon(ListenerConfig(port_range_start=10, port_range_end=5)) == 1

    def test_keyboard_interrupt_exits_0(self):
        with patch.object(ResponderDaemon, "run", side_effect=KeyboardInterrupt):
            assert run_daemon(ListenerConfig()) == 0

    def test_metrics_server_started_when_configured(self):
        with patch("udp_responder.daemon.start_http_server") as start_http_server, \
                patch.object(ResponderDaemon, "run", return_value=1):
            assert run_daemon(ListenerConfig(metrics_port=9100)) == 1
        start_http_server.assert_called_once_with(9100)

    def test_metrics_server_disabled_by_default(self):
        with patch("udp_responder.daemon.start_http_server") as start_http_server, \
                patch.object(ResponderDaemon, "run", return_value=1):
            run_daemon(ListenerConfig())
        start_http_server.assert_not_called()

    def test_main_exits_with_daemon_status(self):
        with patch("udp_responder.daemon.run_daemon", return_value=1), \
                patch("udp_responder.daemon.signal.signal"), \
                patch.dict("os.environ", {}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                main([])
        assert exc_info.value.code == 1

    def test_main_exits_1_on_unreadable_config(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "absent.yaml")])
        assert exc_info.value.code == 1
