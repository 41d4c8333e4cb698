"""Tests for diagnostic logger functionality"""

import json
import logging

from placement_verifier.api.diagnostic_logger import DiagnosticLogger, configure_logging


class TestDiagnosticLogger:
    """Test suite for DiagnosticLogger class"""

    def test_diagnostic_logger_initialization(self):
        logger = DiagnosticLogger()

        assert logger.start_time is not None
        assert logger.stages == []
        assert logger.errors == []
        assert logger.warnings == []

    def test_log_with_context(self, caplog):
        logger = DiagnosticLogger()
        context = {"instance": "a", "group_name": "masters-sg"}
        with caplog.at_level(logging.ERROR):
            logger.log_error("membership_mismatch: missing a", context)

        assert logger.errors[0]["error"] == "membership_mismatch: missing a"
        assert logger.errors[0]["context"] == context
        assert "masters-sg" in caplog.text

    def test_log_different_levels(self):
        logger = DiagnosticLogger()

        logger.log_stage("resolve_identities", "3 nodes")
        logger.log_error("Error message", {})
        logger.log_warning("Warning message", {})
        logger.log_success("Success message")

        assert len(logger.stages) == 1
        assert len(logger.errors) == 1
        assert len(logger.warnings) == 1

    def test_generate_report_in_memory(self):
        logger = DiagnosticLogger()
        logger.log_warning("extra member d")

        report = logger.generate_report()
        assert report["total_errors"] == 0
        assert report["total_warnings"] == 1

    def test_generate_report_to_file(self, tmp_path):
        logger = DiagnosticLogger()
        logger.log_stage("validate_provider_membership")
        logger.log_error("group_resolution_error: not found", {"group_name": "masters-sg"})
        path = tmp_path / "report.json"

        logger.generate_report(str(path))

        saved = json.loads(path.read_text())
        assert saved["total_errors"] == 1
        assert saved["stages"][0]["stage"] == "validate_provider_membership"


def test_configure_logging_with_file(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    log_file = tmp_path / "verifier.log"
    try:
        configure_logging("DEBUG", str(log_file))
        logging.getLogger("placement_verifier.test").debug("hello")
        for handler in root.handlers:
            handler.flush()
        assert "hello" in log_file.read_text()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
