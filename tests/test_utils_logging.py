"""Tests for alignforge.utils.logging module."""

import io
import logging

import pytest
from rich.logging import RichHandler

from alignforge.utils.logging import Timer, setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_plain_output_for_jobs(self):
        """Without rich, console lines carry time, level and logger name."""
        logger = setup_logging(verbosity=1, use_rich=False)

        assert len(logger.handlers) == 1
        handler = logger.handlers[0]
        assert not isinstance(handler, RichHandler)
        assert handler.level == logging.INFO
        assert "%(name)s" in handler.formatter._fmt

    def test_rich_output(self):
        """Rich output uses a RichHandler."""
        logger = setup_logging(verbosity=2, use_rich=True)
        assert isinstance(logger.handlers[0], RichHandler)
        assert logger.level == logging.DEBUG

    def test_auto_detects_terminal(self, monkeypatch):
        """Rich is picked only when stderr is a terminal."""
        monkeypatch.setattr("sys.stderr", io.StringIO())
        logger = setup_logging()
        assert not isinstance(logger.handlers[0], RichHandler)

    def test_log_file_gets_debug(self, tmp_path):
        """The log file records DEBUG even at quiet console verbosity."""
        log_file = tmp_path / "run.log"
        logger = setup_logging(verbosity=0, log_file=log_file, use_rich=False)

        logging.getLogger("alignforge.parallel.dispatcher").debug("job 3 - details")
        for handler in logger.handlers:
            handler.flush()

        assert logger.handlers[0].level == logging.WARNING
        assert "job 3 - details" in log_file.read_text()

    def test_repeated_setup_replaces_handlers(self):
        """A second call does not stack handlers."""
        setup_logging(use_rich=False)
        logger = setup_logging(use_rich=False)
        assert len(logger.handlers) == 1


class TestTimer:
    """Tests for Timer."""

    def test_logs_completion(self, caplog):
        """Elapsed time is recorded and logged."""
        caplog.set_level(logging.INFO, logger="alignforge")
        logger = logging.getLogger("alignforge.test")

        with Timer("Input preparation", logger) as timer:
            pass

        assert timer.elapsed >= 0
        assert "Input preparation completed in" in caplog.text

    def test_logs_failure(self, caplog):
        """A step that raises is logged as failed and the error propagates."""
        caplog.set_level(logging.INFO, logger="alignforge")
        logger = logging.getLogger("alignforge.test")

        with pytest.raises(FileNotFoundError):
            with Timer("Input preparation", logger):
                raise FileNotFoundError("genome.fa")

        assert "Input preparation failed after" in caplog.text
