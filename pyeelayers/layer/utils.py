"""Small helpers shared by the layer modules."""
import asyncio
import functools
from typing import Any, Callable

import numpy as np


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality for visualization parameters.

    Dicts compare by keys and values, lists and tuples element-wise, numpy
    arrays by content. Anything else falls back to ``==``.

    Example:
        >>> deep_equal({'bands': ['B4', 'B3']}, {'bands': ['B4', 'B3']})
        True
    """
    if a is b:
        return True
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return bool(np.array_equal(np.asarray(a), np.asarray(b)))
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


async def run_blocking(func: Callable, *args, **kwargs) -> Any:
    """Run a blocking call (HTTP, EE client, Pillow) off the event loop."""
    return await asyncio.to_thread(functools.partial(func, *args, **kwargs))
