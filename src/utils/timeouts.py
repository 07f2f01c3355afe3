"""Timeout wrapper for blocking calls to external collaborators."""
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Optional
from src.core.errors import CallTimeout
from src.utils.logging import get_logger

logger = get_logger(__name__)

def call_with_timeout(func: Callable, timeout: Optional[float], *args, **kwargs):
    """
    Run func(*args, **kwargs) and give up after `timeout` seconds.
    
    The worker thread cannot be interrupted; on timeout it is left to finish
    in the background and CallTimeout is raised to the caller.
    
    Args:
        func: Callable to run
        timeout: Seconds to wait, None runs the call inline
    
    Returns:
        Whatever func returns
    """
    if timeout is None:
        return func(*args, **kwargs)
    
    pool = ThreadPoolExecutor(max_workers=1)
    future = pool.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        name = getattr(func, '__qualname__', repr(func))
        logger.warning("External call timed out", call=name, timeout_seconds=timeout)
        raise CallTimeout(f"{name} timed out after {timeout}s")
    finally:
        pool.shutdown(wait=False)
