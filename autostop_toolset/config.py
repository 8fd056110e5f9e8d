# autostop_toolset/config.py
from __future__ import annotations
import os
from typing import Iterable, Optional
from botocore.config import Config #type: ignore

# ---- Env helpers
def _env_str(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default

def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except Exception:
        return default

def _env_bool(key: str, default: bool) -> bool:
    v = os.getenv(key)
    return default if v is None else v.strip().lower() in {"1", "true", "yes", "y"}

def _env_list(key: str, default: Iterable[str]) -> list[str]:
    v = os.getenv(key)
    return [s.strip() for s in v.split(",")] if v else list(default)

def _env_first(keys: Iterable[str], default: str = "") -> str:
    for key in keys:
        v = os.getenv(key)
        if v:
            return v
    return default

# ---- SDK config
SDK_MAX_ATTEMPTS = _env_int("AUTOSTOP_SDK_MAX_ATTEMPTS", 10)

SDK_CONFIG = Config(
    retries={"max_attempts": SDK_MAX_ATTEMPTS, "mode": "standard"},
    connect_timeout=5, read_timeout=60,
    user_agent_extra="autostop/1.0",
)

# ------------------------------------------------------------
# CONSTANTS
# You can override any of these via env vars (documented inline).
# ------------------------------------------------------------

# Region the job runs against; falls back to the standard AWS variables.
REGION = _env_first(["AUTOSTOP_REGION", "AWS_REGION", "AWS_DEFAULT_REGION"], "")
LOG_LEVEL = _env_str("AUTOSTOP_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

# Keep running later stages after a stage failed, then raise one aggregated error.
CONTINUE_ON_ERROR = _env_bool("AUTOSTOP_CONTINUE_ON_ERROR", False)

# --- Fan-out width per category (0 = one worker per resource) ---
MAX_WORKERS: int     = _env_int("AUTOSTOP_MAX_WORKERS", 16)
ASG_MAX_WORKERS: int = _env_int("AUTOSTOP_ASG_MAX_WORKERS", MAX_WORKERS)
RDS_MAX_WORKERS: int = _env_int("AUTOSTOP_RDS_MAX_WORKERS", MAX_WORKERS)
ECS_MAX_WORKERS: int = _env_int("AUTOSTOP_ECS_MAX_WORKERS", MAX_WORKERS)

# --- Status filters ---
RDS_STOPPABLE_STATUS = "available"
RDS_CLUSTER_STOPPABLE_STATUS = "available"

# --- Benign rejection codes ---
# Raised by StopDBInstance for instances that cannot be stopped on their own
# (read replicas, Aurora members, SQL Server Multi-AZ, ...).
RDS_INSTANCE_BENIGN_CODES = tuple(
    _env_list("AUTOSTOP_RDS_BENIGN_CODES", ["InvalidParameterCombination"])
)

# Clients built by the orchestrator, in stage order.
SERVICES = ["autoscaling", "ec2", "rds", "ecs"]


def workers_for(category: str) -> Optional[int]:
    """Return the configured fan-out cap for a category, or None when unbounded."""
    caps = {
        "autoscaling": ASG_MAX_WORKERS,
        "rds": RDS_MAX_WORKERS,
        "ecs": ECS_MAX_WORKERS,
    }
    val = caps.get(category, MAX_WORKERS)
    return val if val and val > 0 else None
