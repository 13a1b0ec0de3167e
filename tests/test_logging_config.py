import json
import logging

from arsychat.logging_config import JSONFormatter, LoggerAdapter, TextFormatter, get_logger, setup_logging


class CapturingHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestJSONFormatter:
    def test_formats_context(self):
        record = logging.LogRecord("arsychat.test", logging.INFO, __file__, 1, "hello", None, None)
        record.context = {"chat_id": 42}

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "arsychat.test"
        assert data["message"] == "hello"
        assert data["context"] == {"chat_id": 42}

    def test_non_serializable_context(self):
        record = logging.LogRecord("arsychat.test", logging.INFO, __file__, 1, "hello", None, None)
        record.context = {"error": ValueError("boom")}

        data = json.loads(JSONFormatter().format(record))

        assert data["context"]["error"] == "boom"

    def test_service_and_indexed_ids(self):
        record = logging.LogRecord("arsychat.test", logging.INFO, __file__, 1, "hello", None, None)
        record.context = {"chat_id": 42, "user_id": 7, "command": "/start"}

        data = json.loads(JSONFormatter().format(record))

        assert data["service"] == "arsychat-bot"
        assert data["chat_id"] == 42
        assert data["user_id"] == 7
        assert "command" not in data

    def test_record_without_context(self):
        record = logging.LogRecord("arsychat.test", logging.WARNING, __file__, 1, "plain", None, None)

        data = json.loads(JSONFormatter(service="worker").format(record))

        assert data["service"] == "worker"
        assert "context" not in data
        assert "chat_id" not in data


class TestTextFormatter:
    def test_single_line_with_context(self):
        record = logging.LogRecord("arsychat.test", logging.INFO, __file__, 1, "hello", None, None)
        record.context = {"chat_id": 42}

        assert TextFormatter().format(record) == "INFO    arsychat.test: hello {'chat_id': 42}"


class TestSetupLogging:
    def test_text_mode_installs_text_formatter(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging("debug", json_logs=False)

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, TextFormatter)
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


class TestLoggerAdapter:
    def test_merges_fixed_and_call_context(self):
        logger = get_logger("adapter_test")
        logger.setLevel(logging.DEBUG)
        handler = CapturingHandler()
        logger.addHandler(handler)
        try:
            LoggerAdapter(logger, {"chat_id": 42}).info("Command received", context={"command": "/start"})
        finally:
            logger.removeHandler(handler)

        assert logger.name == "arsychat.adapter_test"
        assert handler.records[0].context == {"chat_id": 42, "command": "/start"}
