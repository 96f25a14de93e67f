"""
Structured logging tests
"""
import json
import logging

import pytest

from utils.logger import SERVICE_NAME, JsonFormatter, StructuredLogger, configure_logging


class TestStructuredLogger:
    """JSON log lines for sync events and provider calls"""

    @pytest.mark.unit
    def test_sync_event_is_json_with_service(self, caplog):
        with caplog.at_level(logging.INFO, logger='test.sync'):
            StructuredLogger('test.sync').log_sync_event('sync_completed', {'alarms_created': 2})

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry['event_type'] == 'sync_completed'
        assert entry['service'] == SERVICE_NAME
        assert entry['alarms_created'] == 2
        assert caplog.records[-1].levelno == logging.INFO

    @pytest.mark.unit
    def test_failed_event_logs_at_error(self, caplog):
        with caplog.at_level(logging.INFO, logger='test.sync'):
            StructuredLogger('test.sync').log_sync_event('sync_failed', {'error_code': 'UNAUTHORIZED'})
        assert caplog.records[-1].levelno == logging.ERROR

    @pytest.mark.unit
    def test_api_call_error_status(self, caplog):
        with caplog.at_level(logging.INFO, logger='test.http'):
            StructuredLogger('test.http').log_api_call('GET', 'https://example.com', status_code=503,
                                                      duration_ms=12.345, provider='google')

        record = caplog.records[-1]
        entry = json.loads(record.getMessage())
        assert record.levelno == logging.ERROR
        assert entry['duration_ms'] == 12.35
        assert entry['provider'] == 'google'


class TestJsonFormatter:
    """Plain messages are wrapped, JSON messages pass through"""

    @pytest.mark.unit
    def test_plain_message_is_wrapped(self):
        record = logging.LogRecord('x', logging.WARNING, __file__, 1, 'hello %s', ('world',), None)
        entry = json.loads(JsonFormatter().format(record))
        assert entry['message'] == 'hello world'
        assert entry['level'] == 'WARNING'

    @pytest.mark.unit
    def test_json_message_passes_through(self):
        payload = json.dumps({'event_type': 'sync_started'})
        record = logging.LogRecord('x', logging.INFO, __file__, 1, payload, None, None)
        assert JsonFormatter().format(record) == payload

    @pytest.mark.unit
    def test_configure_logging_sets_level(self):
        previous = logging.getLogger().level
        try:
            root = configure_logging(level='WARNING', structured=True)
            assert root.level == logging.WARNING
        finally:
            logging.getLogger().setLevel(previous)
