import logging
from logging.handlers import RotatingFileHandler

from smclearn.utils.logger import get_logger, setup_logger


def test_module_loggers_are_unconfigured_children():
    root = logging.getLogger("smclearn")
    child = get_logger("smclearn.ml.extraction")
    assert child.name == "smclearn.ml.extraction"
    assert child.handlers == []
    assert child.parent is root


def test_setup_writes_rotating_file(tmp_path):
    log_file = tmp_path / "logs" / "loop.log"
    logger = setup_logger("smclearn-file-check", log_file=str(log_file))

    assert logger.propagate is False
    assert any(isinstance(h, RotatingFileHandler) for h in logger.handlers)

    logger.info("iteration 1 complete")
    for handler in logger.handlers:
        handler.flush()
    assert "iteration 1 complete" in log_file.read_text()

    # cached, not reconfigured
    assert setup_logger("smclearn-file-check") is logger
    assert get_logger("smclearn-file-check") is logger
