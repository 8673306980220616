"""
Generic registry for named callables.

Used to look up the observation-covariance builders of the curve fitter
("independent", "correlated") by the name given in configuration.
"""

from typing import Callable, Dict, Generic, List, TypeVar

F = TypeVar("F", bound=Callable)


class FunctionRegistry(Generic[F]):
    """Registry that stores and returns callables by key.

    Example:
        COVARIANCE_REGISTRY = FunctionRegistry("covariance model")
        COVARIANCE_REGISTRY.register("independent", independent_covariance)
        builder = COVARIANCE_REGISTRY.get("independent")
    """

    def __init__(self, name: str):
        """Initialize the registry.

        Args:
            name: Human-readable name for error messages (e.g., "covariance model").
        """
        self._registry: Dict[str, F] = {}
        self._name = name

    def register(self, key: str, func: F) -> None:
        """Register a function under the given key.

        Raises:
            ValueError: If func is not callable.
        """
        if not callable(func):
            raise ValueError(f"{self._name} must be callable, got {type(func)}")
        self._registry[key] = func

    def get(self, key: str) -> F:
        """Get a registered function by key.

        Raises:
            ValueError: If the key is not registered.
        """
        if key not in self._registry:
            available = list(self._registry.keys())
            raise ValueError(f"Unknown {self._name} '{key}'. Available: {available}")
        return self._registry[key]

    def keys(self) -> List[str]:
        """Return all registered keys."""
        return list(self._registry.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._registry

    def register_decorator(self, key: str) -> Callable[[F], F]:
        """Return a decorator that registers the function under the given key.

        Example:
            @COVARIANCE_REGISTRY.register_decorator("independent")
            def independent_covariance(expected, dispersion, correlation):
                ...
        """

        def decorator(func: F) -> F:
            self.register(key, func)
            return func

        return decorator
