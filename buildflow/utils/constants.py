"""Centralized constants for buildflow.

Single source of truth for paths, file names and environment variable names.
"""

from pathlib import Path

# ============================================================================
# OUTPUT DIRECTORIES
# ============================================================================

# Working directory for buildflow's own artifacts
STATE_DIR = Path("./.buildflow")

ERROR_LOG_FILE = STATE_DIR / "error.log"
RUNTIME_CONFIG_FILE = STATE_DIR / "config.json"

# Default coverage report directory (owned by the coverage aggregator)
COVERAGE_DIR = Path("./coverage")

# ============================================================================
# BUILD FILE
# ============================================================================

DEFAULT_BUILD_FILE = "buildflow.yml"
BUILD_FILE_CANDIDATES = ("buildflow.yml", "buildflow.yaml")

# Alias run when no name is requested
DEFAULT_ALIAS = "default"

# ============================================================================
# EXECUTION
# ============================================================================

# Seconds an async task may stay pending before it fails with a timeout
DEFAULT_TASK_TIMEOUT = 900

# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================

# Runtime settings are overridden by BUILDFLOW_<SECTION>_<KEY>
ENV_PREFIX = "BUILDFLOW"
