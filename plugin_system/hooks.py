"""Hook points and the module base class.

Policy modules register handlers against named hook points when they are
constructed. The manager runs the handlers of every registered module, in
module registration order, whenever it reaches a hook point.

Two kinds of hook point exist:

- side-effect hooks (``call_hook``): every handler runs in order; an
  exception from any handler stops the rest and propagates.
- waterfall hooks (``apply_hook``): a value is piped through every handler
  in order and the last handler's result is returned.

Example:
    >>> class AuditModule(Module):
    ...     def __init__(self, manager):
    ...         super().__init__(manager)
    ...         self.hook(HookName.BEFORE_INSTALL_PLUGIN, self.log_install)
    ...
    ...     def log_install(self, plugin_id: str) -> None:
    ...         logger.info("installing %s", plugin_id)
    >>> manager.register_module(AuditModule)
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from plugin_system.manager import PluginManager

logger = logging.getLogger(__name__)


class HookName(str, Enum):
    """Hook points reached by the plugin manager."""

    # Side-effect hooks
    BEFORE_INITIALIZE = "before-initialize"
    BEFORE_INSTALL_PLUGIN = "before-install-plugin"

    # Waterfall hooks
    PLUGIN_SOURCE = "plugin-source"
    PLUGIN_SNAPSHOTS = "plugin-snapshots"


@dataclass(frozen=True)
class RegisteredHook:
    """A handler registered by a module for a hook point."""

    name: HookName
    handler: Callable[..., Any]


class Module:
    """Base class for policy modules.

    Subclasses call :meth:`hook` from ``__init__``. A module never calls
    another module; it only sees the manager.
    """

    def __init__(self, manager: PluginManager):
        self.manager = manager
        self._hooks: list[RegisteredHook] = []

    def hook(self, name: HookName | str, handler: Callable[..., Any]) -> None:
        """Register a handler to run at a hook point."""
        self._hooks.append(RegisteredHook(HookName(name), handler))

    @property
    def hooks(self) -> tuple[RegisteredHook, ...]:
        return tuple(self._hooks)

    def handlers_for(self, name: HookName) -> list[Callable[..., Any]]:
        return [h.handler for h in self._hooks if h.name == name]


async def _invoke(handler: Callable[..., Any], *args: Any) -> Any:
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class Hookable:
    """Ordered module registry able to run hook points."""

    def __init__(self) -> None:
        self._modules: list[Module] = []

    def register_module(self, module_cls: type[Module], **options: Any) -> Module:
        """Instantiate and register a module.

        Registration order is the precedence order for every hook point.

        Args:
            module_cls: Module class to instantiate.
            **options: Extra keyword arguments passed to the constructor.

        Returns:
            The registered module instance.
        """
        module = module_cls(self, **options)  # type: ignore[arg-type]
        self._modules.append(module)
        logger.debug(
            "Registered module %s (%d hooks)", module_cls.__name__, len(module.hooks)
        )
        return module

    @property
    def modules(self) -> tuple[Module, ...]:
        return tuple(self._modules)

    async def call_hook(self, name: HookName, *args: Any) -> None:
        """Run every handler of a side-effect hook."""
        for module in self._modules:
            for handler in module.handlers_for(name):
                await _invoke(handler, *args)

    async def apply_hook(self, name: HookName, value: Any, *context: Any) -> Any:
        """Pipe ``value`` through every handler of a waterfall hook."""
        for module in self._modules:
            for handler in module.handlers_for(name):
                value = await _invoke(handler, value, *context)
        return value
