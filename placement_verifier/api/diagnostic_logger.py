#!/usr/bin/env python3
"""
Diagnostic Logger for the Control-Plane Placement Verifier

Records every pipeline stage, error and warning of a verification run so a
failed run can be diagnosed from its log and JSON report without re-running
with extra instrumentation.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("placement_verifier.diagnostic")


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Configure root logging once for the CLI process."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


class DiagnosticLogger:
    """Per-run diagnostic record for the verification pipeline."""

    def __init__(self):
        self.start_time = datetime.now()
        self.stages: List[Dict[str, Any]] = []
        self.errors: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []

    def log_stage(self, stage: str, detail: str = ""):
        self.stages.append(
            {"timestamp": datetime.now().isoformat(), "stage": stage, "detail": detail}
        )
        logger.info(f"STAGE {stage}: {detail}" if detail else f"STAGE {stage}")

    def log_error(self, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log an error with context."""
        self.errors.append({
            "timestamp": datetime.now().isoformat(),
            "error": error_msg,
            "context": context or {},
        })
        logger.error(f"ERROR: {error_msg}")
        if context:
            logger.error(f"Context: {json.dumps(context, indent=2, sort_keys=True, default=str)}")

    def log_warning(self, warning_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log a warning with context."""
        self.warnings.append({
            "timestamp": datetime.now().isoformat(),
            "warning": warning_msg,
            "context": context or {},
        })
        logger.warning(f"WARNING: {warning_msg}")
        if context:
            logger.warning(f"Context: {json.dumps(context, indent=2, sort_keys=True, default=str)}")

    def log_success(self, success_msg: str):
        logger.info(f"SUCCESS: {success_msg}")

    def generate_report(self, report_path: Optional[str] = None) -> Dict[str, Any]:
        """Build the diagnostic report, saving it as JSON when a path is given."""
        report = {
            "start_time": self.start_time.isoformat(),
            "end_time": datetime.now().isoformat(),
            "stages": self.stages,
            "errors": self.errors,
            "warnings": self.warnings,
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
        }

        if report_path:
            with open(report_path, "w") as f:
                json.dump(report, f, indent=2, default=str)
            logger.info(f"Diagnostic report saved to: {report_path}")

        return report
