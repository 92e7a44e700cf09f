"""
Async support for the reconciler.

The engine is synchronous: a pass blocks its thread while it waits on
provider events. Callers running inside an event loop can instead use the
``a``-prefixed coroutine variants generated here, which run the blocking
implementation in a worker thread via :func:`asyncio.to_thread`::

    reconciler = build_reconciler("linode", {"token": "..."})
    result = await reconciler.areconcile(desired, current)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable, Coroutine, TypeVar

T = TypeVar("T")


def async_wrap(
    fn: Callable[..., T],
) -> Callable[..., Coroutine[Any, Any, T]]:
    """Return an async version of *fn* that runs it in a thread.

    Args:
        fn: A synchronous callable to wrap.

    Returns:
        An async callable with the same parameters and return type.
    """

    @functools.wraps(fn)
    async def _wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    return _wrapper


class AsyncMixin:
    """Mixin that generates ``a<method>`` coroutine variants.

    Every public, plain function defined on the subclass gets a sibling
    coroutine (``wait_for_event`` -> ``await_for_event``,
    ``reconcile`` -> ``areconcile``). Names already defined are left alone.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for name, attr in list(vars(cls).items()):
            if name.startswith("_") or not inspect.isfunction(attr):
                continue
            if inspect.iscoroutinefunction(attr):
                continue
            async_name = f"a{name}"
            if not hasattr(cls, async_name):
                setattr(cls, async_name, async_wrap(attr))
