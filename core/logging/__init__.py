"""Per-module log files rotated at run boundaries.

Entry points (the CLI, the test suite) bracket work with start_run/end_run;
modules just log through ``logging.getLogger(__name__)``.

Files under logs/ (or CONDENSER_LOG_DIR):
    segmentation.log, guide.log, chapters.log, oracle.log, checkpoint.log, ...
    run-3p.log          third-party libraries
    *.previous.log      the run before
"""

from core.logging.handlers import ModuleDispatchHandler, RunLogFiles, ThirdPartyHandler
from core.logging.run_manager import (
    FALLBACK_LOG,
    MODULE_TO_LOG,
    end_run,
    get_current_run_id,
    module_to_log_name,
    start_run,
)

__all__ = [
    "start_run",
    "end_run",
    "get_current_run_id",
    "module_to_log_name",
    "MODULE_TO_LOG",
    "FALLBACK_LOG",
    "ModuleDispatchHandler",
    "ThirdPartyHandler",
    "RunLogFiles",
]
