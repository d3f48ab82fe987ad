"""
Utility functions for RP Conseil Hub.
Atomic JSON writes for the raw/processed snapshots, a retry decorator for
data store reads, and the HTTP helper used to reach the webhooks.

Usage:
    from scripts.lib.utils import atomic_write_json, retry_on_exception, safe_request
"""
import json
import os
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)


def atomic_write_json(data: Any, file_path: str | Path, indent: int = 2) -> bool:
    """
    Serialise ``data`` next to ``file_path`` then swap it into place, so a
    crash mid-write never leaves a truncated snapshot behind.

    Args:
        data: JSON-serialisable payload (dates and models go through str()).
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        True if the file was written, False otherwise.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_name(file_path.name + ".tmp")

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=indent, default=str)
        os.replace(temp_path, file_path)
        logger.debug("Wrote %s", file_path)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error("Could not write %s: %s", file_path, e)
        if temp_path.exists():
            temp_path.unlink()
        return False


def load_json(file_path: str | Path) -> Optional[Any]:
    """Read a JSON file, returning None when it is missing or corrupt."""
    file_path = Path(file_path)
    if not file_path.exists():
        return None
    try:
        with open(file_path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Could not read %s: %s", file_path, e)
        return None


def retry_on_exception(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """
    Decorator retrying the wrapped call on ``exceptions`` with exponential
    backoff. The last failure is re-raised.

    Args:
        max_attempts: Total number of calls before giving up.
        delay: Seconds to wait after the first failure.
        backoff: Multiplier applied to the delay after each failure.
        exceptions: Exception types that trigger a retry.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            wait = delay
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(
                            "%s gave up after %d attempts: %s",
                            func.__name__, attempt, e,
                        )
                        raise
                    logger.warning(
                        "%s failed (attempt %d/%d): %s — retrying in %.1fs",
                        func.__name__, attempt, max_attempts, e, wait,
                    )
                    time.sleep(wait)
                    wait *= backoff
                    attempt += 1
        return wrapper
    return decorator


def safe_request(
    url: str,
    method: str = "POST",
    timeout: int = 60,
    max_retries: int = 2,
    headers: Dict[str, str] = None,
    **kwargs,
) -> Optional[requests.Response]:
    """
    HTTP call with retries on transport errors and error answers.

    Args:
        url: Target URL.
        method: HTTP method (webhooks are POST).
        timeout: Per-attempt timeout in seconds.
        max_retries: Attempts before giving up.
        headers: Extra request headers.
        **kwargs: Passed through to requests (json=, data=, params=).

    Returns:
        The successful response, or None once every attempt failed.
    """
    @retry_on_exception(
        max_attempts=max_retries,
        delay=1.0,
        exceptions=(
            requests.exceptions.Timeout,
            requests.exceptions.ConnectionError,
            requests.exceptions.HTTPError,
        ),
    )
    def _send() -> requests.Response:
        started = time.time()
        response = requests.request(
            method, url, timeout=timeout, headers=headers or {}, **kwargs,
        )
        logger.info(
            "%s %s — %d in %.2fs",
            method, url, response.status_code, time.time() - started,
        )
        response.raise_for_status()
        return response

    try:
        return _send()
    except requests.RequestException as e:
        logger.error("Request failed: %s %s - %s", method, url, e)
        return None

