import logging

from loguru import logger

from asset_gateway.core import logging as log_module


def test_setup_logging_routes_stdlib_records_to_loguru(monkeypatch):
    monkeypatch.setattr(log_module.settings, "LOG_ASYNC", False)
    monkeypatch.setattr(log_module.settings, "LOG_FILE_PATH", "")
    log_module.setup_logging()

    messages: list[str] = []
    sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="INFO")
    try:
        logging.getLogger("asset_gateway.tests").warning("asset_pipeline_event request_id=%s", "r1")
    finally:
        logger.remove(sink_id)

    assert "asset_pipeline_event request_id=r1" in messages
    assert logging.getLogger("httpx").level == logging.WARNING
    assert any(isinstance(h, log_module.InterceptHandler) for h in logging.getLogger().handlers)
