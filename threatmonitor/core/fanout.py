"""
Settle-all join for provider fan-out.

Every branch runs to completion (or its timeout); a failing branch becomes a
failed ProviderResult instead of aborting its siblings.
"""
import asyncio
import logging
from typing import Awaitable, Dict, Optional

from threatmonitor.core.types import ProviderResult

logger = logging.getLogger(__name__)


async def _bounded(call: Awaitable, timeout: Optional[float]):
    if timeout is None:
        return await call
    return await asyncio.wait_for(call, timeout=timeout)


async def settle_all(calls: Dict[str, Awaitable], timeout: Optional[float] = None) -> Dict[str, ProviderResult]:
    """
    Run all provider calls concurrently and collect one result per provider.
    
    Args:
        calls: provider name -> awaitable producing that provider's payload
        timeout: per-call limit in seconds, None for no limit
    
    Returns:
        provider name -> ProviderResult, keyed by provider rather than by
        completion order
    """
    names = list(calls)
    outcomes = await asyncio.gather(
        *(_bounded(calls[name], timeout) for name in names),
        return_exceptions=True
    )
    
    results: Dict[str, ProviderResult] = {}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, asyncio.TimeoutError):
            reason = f"timed out after {timeout}s"
        elif isinstance(outcome, Exception):
            reason = str(outcome) or outcome.__class__.__name__
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results[name] = ProviderResult(provider=name, payload=outcome)
            continue
        
        logger.warning(f"⚠️ {name} failed: {reason}")
        results[name] = ProviderResult(provider=name, error=reason)
    
    return results
