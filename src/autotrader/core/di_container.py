"""
Dependency Injection Container.

Services are built once at process start and handed to each other through
constructors, so nothing in the package reaches for a module-level global.

Usage:
    container = DependencyContainer()
    container.register_singleton("AppConfig", config)
    container.register_singleton("PersistenceStore", InMemoryStore())
    container.register_type(AutoTrader, as_singleton=True)

    trader = container.resolve("AutoTrader")
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Type, Union, get_type_hints

from ..exceptions import AutotraderError

logger = logging.getLogger(__name__)

ServiceKey = Union[str, type]


class DependencyResolutionError(AutotraderError):
    """Raised when a dependency cannot be resolved."""
    pass


class CircularDependencyError(DependencyResolutionError):
    """Raised when a circular dependency is detected."""
    pass


def _key_name(key: ServiceKey) -> str:
    return key if isinstance(key, str) else key.__name__


class DependencyContainer:
    """
    Lightweight dependency injection container.

    Registrations:
    1. Singleton: an instance created by the caller
    2. Factory: a callable whose parameters are auto-injected
    3. Type: a class whose __init__ parameters are auto-injected,
       optionally cached after first resolution

    Constructor parameters are matched by type-hint class name first and
    by parameter name second. Parameters with defaults are only injected
    when a matching service exists.
    """

    def __init__(self):
        self._singletons: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[..., Any]] = {}
        self._types: Dict[str, type] = {}
        self._cached_types: set = set()
        self._aliases: Dict[str, str] = {}
        self._resolving: List[str] = []

    # ========================================================================
    # Registration
    # ========================================================================

    def register_singleton(self, key: ServiceKey, instance: Any) -> None:
        name = _key_name(key)
        if name in self._singletons:
            logger.warning("Overwriting existing singleton: %s", name)
        self._singletons[name] = instance
        logger.info("Registered singleton: %s -> %s", name, type(instance).__name__)

    def register_factory(self, key: ServiceKey, factory: Callable[..., Any]) -> None:
        name = _key_name(key)
        self._factories[name] = factory
        logger.info("Registered factory: %s", name)

    def register_type(
        self,
        interface: type,
        implementation: Optional[type] = None,
        as_singleton: bool = False,
    ) -> None:
        """
        Register a class for auto-instantiation.

        Args:
            interface: Key the service is resolved under
            implementation: Concrete class (defaults to interface)
            as_singleton: Cache the instance after the first resolution
        """
        name = interface.__name__
        self._types[name] = implementation or interface
        if as_singleton:
            self._cached_types.add(name)
        logger.info(
            "Registered type%s: %s -> %s",
            " (singleton)" if as_singleton else "",
            name,
            self._types[name].__name__,
        )

    def register_alias(self, alias: str, target: ServiceKey) -> None:
        self._aliases[alias] = _key_name(target)

    # ========================================================================
    # Resolution
    # ========================================================================

    def resolve(self, key: ServiceKey) -> Any:
        """
        Resolve a service with automatic dependency injection.

        Raises:
            DependencyResolutionError: If the service is not registered
            CircularDependencyError: If resolution loops back on itself
        """
        name = _key_name(key)
        name = self._aliases.get(name, name)

        if name in self._resolving:
            cycle = " -> ".join(self._resolving + [name])
            raise CircularDependencyError(f"Circular dependency detected: {cycle}")

        if name in self._singletons:
            return self._singletons[name]

        self._resolving.append(name)
        try:
            if name in self._factories:
                factory = self._factories[name]
                return factory(**self._resolve_dependencies(factory))

            if name in self._types:
                cls = self._types[name]
                instance = cls(**self._resolve_dependencies(cls.__init__))
                if name in self._cached_types:
                    self._singletons[name] = instance
                return instance

            raise DependencyResolutionError(
                f"Service '{name}' not registered. "
                f"Available services: {self.get_registered_names()}"
            )
        finally:
            self._resolving.pop()

    def resolve_optional(self, key: ServiceKey) -> Optional[Any]:
        try:
            return self.resolve(key)
        except CircularDependencyError:
            raise
        except DependencyResolutionError:
            logger.debug("Optional service not found: %s", _key_name(key))
            return None

    def _resolve_dependencies(self, func: Callable) -> Dict[str, Any]:
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            return {}

        try:
            hints = get_type_hints(func)
        except Exception as e:
            logger.debug("Could not read type hints for %s: %s", func, e)
            hints = {}

        resolved = {}
        for param_name, param in signature.parameters.items():
            if param_name in ("self", "cls") or param.kind in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            ):
                continue

            candidates = []
            hint = hints.get(param_name)
            if hint is not None:
                candidates.extend(_hint_names(hint))
            candidates.append(param_name)

            for candidate in candidates:
                if self.has_service(candidate):
                    resolved[param_name] = self.resolve(candidate)
                    break
            else:
                if param.default is inspect.Parameter.empty:
                    raise DependencyResolutionError(
                        f"Cannot resolve parameter '{param_name}' "
                        f"(candidates: {candidates}) for {getattr(func, '__qualname__', func)}"
                    )

        return resolved

    # ========================================================================
    # Utility Methods
    # ========================================================================

    def has_service(self, key: ServiceKey) -> bool:
        name = _key_name(key)
        name = self._aliases.get(name, name)
        return name in self._singletons or name in self._factories or name in self._types

    def get_registered_names(self) -> List[str]:
        names = set(self._singletons) | set(self._factories) | set(self._types) | set(self._aliases)
        return sorted(names)

    def clear(self) -> None:
        self._singletons.clear()
        self._factories.clear()
        self._types.clear()
        self._cached_types.clear()
        self._aliases.clear()
        self._resolving.clear()

    def __repr__(self) -> str:
        return (
            f"DependencyContainer("
            f"singletons={len(self._singletons)}, "
            f"factories={len(self._factories)}, "
            f"types={len(self._types)})"
        )


def _hint_names(hint: Any) -> List[str]:
    """Class names a type hint can be resolved under (unwraps Optional[T])."""
    args = getattr(hint, "__args__", None)
    if args and getattr(hint, "__origin__", None) is Union:
        return [a.__name__ for a in args if a is not type(None) and hasattr(a, "__name__")]
    name = getattr(hint, "__name__", None)
    return [name] if name else []
