"""Agent health checks: check each model before a debate starts."""

import asyncio
import logging
from collections.abc import Sequence

from synapse.providers.base import AIAgent

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 8.0


async def _check_one(agent: AIAgent, timeout: float) -> tuple[str, bool, str]:
    """Check a single agent. Returns (name, ok, error_message)."""
    try:
        ok = await asyncio.wait_for(agent.validate_api_key(), timeout=timeout)
    except TimeoutError:
        return agent.name(), False, f"Health check timed out after {timeout}s"
    except Exception as exc:
        return agent.name(), False, str(exc)
    if not ok:
        return agent.name(), False, "Key rejected"
    return agent.name(), True, ""


async def run_health_checks(
    agents: Sequence[AIAgent],
    timeout: float = _TIMEOUT_SEC,
) -> dict[str, tuple[bool, str]]:
    """Check all agents in parallel, each under its own timeout.

    Returns:
        Dict mapping agent name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(a, timeout) for a in agents))
    for name, ok, err in results:
        if not ok:
            logger.warning("Health check failed for %s: %s", name, err)
    return {name: (ok, err) for name, ok, err in results}
