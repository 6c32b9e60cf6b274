import os

"""
Central configuration for the guardian recovery kernel.
Quorum constants, identity limits and logging settings live here.

Values that operators may want to change per deployment can be overridden
through RECOVERY_KERNEL_* environment variables.
"""

# ---- Identity ----
# The null principal: invalid anywhere an active identity is required.
NULL_ADDRESS = "0x" + "0" * 40
MAX_PRINCIPAL_LENGTH = 256

# ---- Recovery quorum ----
# Recovery is structurally disabled below this many guardians.
MIN_GUARDIANS_FOR_RECOVERY = 3

# threshold = floor(NUMERATOR * guardian_count / DENOMINATOR)
APPROVAL_THRESHOLD_NUMERATOR = 2
APPROVAL_THRESHOLD_DENOMINATOR = 3

# ---- Logging ----
ENGINE_LOG_LEVEL = os.getenv("RECOVERY_KERNEL_LOG_LEVEL", "INFO")
ENGINE_LOG_FILE = os.getenv("RECOVERY_KERNEL_LOG_FILE") or None

# ---- HTTP surface ----
API_PREFIX = "/api/account"
PRINCIPAL_HEADER = "X-Principal"

# Owner used when the HTTP service builds its engine at startup.
DEFAULT_OWNER = os.getenv("RECOVERY_KERNEL_OWNER", "0x" + "0" * 39 + "1")


def compute_threshold(guardian_count: int) -> int:
    """Approvals needed to execute a recovery with `guardian_count` guardians."""
    if guardian_count < 0:
        raise ValueError(f"guardian_count must be >= 0, got {guardian_count}")
    return (APPROVAL_THRESHOLD_NUMERATOR * guardian_count) // APPROVAL_THRESHOLD_DENOMINATOR
