"""
Tests for the logging setup: event merging, noisy-event filtering, file output.
"""
import logging

from swapcache.core.json_utils import dumps, loads
from swapcache.infra.logging_cfg import EventJsonFormatter, NoisyEventFilter, build_logger


def _record(msg, level=logging.INFO):
    return logging.LogRecord("swapcache", level, __file__, 1, msg, None, None)


class TestEventJsonFormatter:
    def test_event_fields_are_merged(self):
        line = EventJsonFormatter().format(_record(dumps({"event": "cache_hit", "side": "buy"})))
        data = loads(line)
        assert data["event"] == "cache_hit"
        assert data["side"] == "buy"
        assert data["level"] == "INFO"
        assert "msg" not in data

    def test_plain_message_kept(self):
        data = loads(EventJsonFormatter().format(_record("Configuration validation passed")))
        assert data["msg"] == "Configuration validation passed"


class TestNoisyEventFilter:
    def test_repeats_hidden_until_cooldown(self):
        now = [100.0]
        f = NoisyEventFilter(cooldown_sec=30.0, clock=lambda: now[0])
        msg = dumps({"event": "refresh_failed", "token": "T"})

        assert f.filter(_record(msg))
        assert not f.filter(_record(msg))
        now[0] += 31.0
        assert f.filter(_record(msg))

    def test_keyed_per_token_and_other_events_pass(self):
        f = NoisyEventFilter(clock=lambda: 0.0)
        assert f.filter(_record(dumps({"event": "refresh_failed", "token": "A"})))
        assert f.filter(_record(dumps({"event": "refresh_failed", "token": "B"})))
        for _ in range(3):
            assert f.filter(_record(dumps({"event": "cache_hit", "token": "A"})))
        assert f.filter(_record("not json"))


class TestBuildLogger:
    def test_file_output_is_json_lines(self, tmp_path):
        path = tmp_path / "swap.log"
        logger = build_logger("swapcache.test.file", file_path=str(path), background_file=False)
        try:
            logger.info(dumps({"event": "preload_complete", "token": "T"}))
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

        data = loads(path.read_text().strip().splitlines()[-1])
        assert data["event"] == "preload_complete"
        assert data["token"] == "T"

    def test_second_call_only_adjusts_level(self):
        logger = build_logger("swapcache.test.idem")
        try:
            count = len(logger.handlers)
            build_logger("swapcache.test.idem", level=logging.DEBUG)
            assert len(logger.handlers) == count
            assert logger.level == logging.DEBUG
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
