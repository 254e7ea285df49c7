import logging

from app.core.logging import setup_logging


def test_library_loggers_are_quieted() -> None:
    setup_logging()

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("pymongo").propagate is False
    assert logging.getLogger("uvicorn").level == logging.INFO
