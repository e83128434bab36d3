"""Lifecycle hook dispatch.

Each lifecycle option (``list_with``, ``create_with``, ``update_with``,
``delete_with``, ``validate_with``) resolves to either the engine's default
implementation or a configured HookSpec. Overrides are called with a fixed
positional contract::

    target(*subjects, session, *hook.args)

where ``subjects`` are the operation's primary arguments:

- ``list_with``: ``(resource, options)``
- ``create_with``: ``(params,)``
- ``update_with``: ``(record, params)``
- ``delete_with``: ``(record,)``
- ``validate_with``: ``(changeset,)``

The session is passed exactly as the caller gave it, including None.

Return values: a ``validate_with`` override must return a Changeset (the
service marks its action and raises HookResolutionError otherwise). Every
other override owns its result shape, which is handed back to the caller
unchanged.

Targets may be plain functions or coroutine functions; coroutine results are
awaited. Import-path targets are resolved on first call and cached; a target
that cannot be resolved raises HookResolutionError at that point.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from collections.abc import Awaitable, Callable
from functools import cache
from typing import Any

from adminkit.errors import HookResolutionError
from adminkit.specs.resource import HookSpec, ResourceConfig

logger = logging.getLogger(__name__)


@cache
def import_target(path: str) -> Callable[..., Any]:
    """Import ``"pkg.mod:func"`` or ``"pkg.mod.func"`` and return the callable."""
    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise HookResolutionError(f"Invalid hook target '{path}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise HookResolutionError(
            f"Cannot import module '{module_name}' for hook '{path}'"
        ) from exc

    func = getattr(module, attr, None)
    if func is None:
        raise HookResolutionError(f"Module '{module_name}' has no attribute '{attr}'")
    if not callable(func):
        raise HookResolutionError(f"Hook target '{path}' is not callable")
    return func


def resolve(hook: HookSpec) -> Callable[..., Any]:
    """Resolve a HookSpec's target to a callable."""
    if isinstance(hook.target, str):
        return import_target(hook.target)
    return hook.target


async def invoke(hook: HookSpec, *subjects: Any) -> Any:
    """Call a hook with ``subjects`` followed by its fixed extra args."""
    func = resolve(hook)
    result = func(*subjects, *hook.args)
    if asyncio.iscoroutine(result):
        result = await result
    return result


async def dispatch(
    config: ResourceConfig,
    option: str,
    default: Callable[[], Awaitable[Any]],
    *subjects: Any,
) -> Any:
    """
    Run either the default implementation or the configured override.

    Args:
        config: Resource configuration holding the option
        option: Lifecycle option name
        default: Zero-argument coroutine function for the default path
        subjects: Positional arguments for the override, session included

    Returns:
        Whatever the chosen implementation returns, unmodified
    """
    hook = config.hook(option)
    if hook is None:
        logger.debug("Dispatching %s to default implementation", option)
        return await default()

    logger.debug("Dispatching %s to override %s", option, hook.name)
    return await invoke(hook, *subjects)


def invoke_sync(hook: HookSpec, *subjects: Any) -> Any:
    """Call a hook that must return synchronously (preload overrides)."""
    result = resolve(hook)(*subjects, *hook.args)
    if asyncio.iscoroutine(result):
        result.close()
        raise HookResolutionError(f"Hook '{hook.name}' must not be a coroutine function")
    return result
