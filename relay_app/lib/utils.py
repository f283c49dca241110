"""Utility functions for the live transcript relay."""

import logging
import os
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def check_upstream_env_vars() -> None:
    """Check that required AssemblyAI environment variables are set.

    Raises:
        ValueError: If required variables are missing
    """
    required_vars = ("ASSEMBLYAI_API_KEY",)
    missing_vars = [var for var in required_vars if not os.getenv(var)]
    if missing_vars:
        raise ValueError(f"Missing environment variables: {', '.join(missing_vars)}")


def is_upstream_configured() -> bool:
    """Check if AssemblyAI is configured.

    Returns:
        True if the AssemblyAI API key is set
    """
    return bool(os.getenv("ASSEMBLYAI_API_KEY"))


def is_persistence_configured() -> bool:
    """Check if the persistence proxy is configured.

    Returns:
        True if the proxy shared secret is set
    """
    return bool(os.getenv("PROXY_SECRET"))


def utc_timestamp() -> str:
    """Current time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
