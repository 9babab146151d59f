from __future__ import annotations

import inspect
from collections.abc import Callable, Generator, Iterator
from dataclasses import dataclass, field
from enum import Enum, auto
from inspect import Parameter
from typing import Any, ClassVar, TypeAlias, TypeVar, get_type_hints

from subwire.exceptions import SubwireProviderDependencyInferenceError
from subwire.markers import component_base_key

T = TypeVar("T")

UserDependency: TypeAlias = Any
"""A dependency key that has been registered or is being resolved by user code."""

ProviderSlot: TypeAlias = int
"""Process-wide sequence number identifying a registration in instance caches."""

ConcreteTypeProvider: TypeAlias = type[T]
"""A class whose constructor produces the dependency."""

FactoryProvider: TypeAlias = Callable[..., T]
"""A factory function that produces a dependency."""

GeneratorProvider: TypeAlias = Callable[..., Generator[T, None, None]]
"""A generator function that yields a dependency once and cleans up when resumed."""

_VARIADIC_KINDS = (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD)
_RECEIVER_NAMES = frozenset({"self", "cls"})


class Lifetime(Enum):
    """Defines how long a resolved instance is shared."""

    TRANSIENT = auto()
    """Every request builds a fresh instance."""

    SCOPED = auto()
    """One instance per lifetime scope that resolves it; child scopes get their own."""

    SINGLETON = auto()
    """One instance, cached in the scope that holds the registration."""


@dataclass(kw_only=True)
class ProviderSpec:
    """A registration: how to produce a dependency and how long to share it.

    Exactly one of ``instance``, ``concrete_type``, ``factory`` or ``generator``
    is set. Instance registrations ignore ``lifetime``.
    """

    SLOT_COUNTER: ClassVar[ProviderSlot] = 0

    provides: UserDependency
    """The dependency key that this provider supplies."""

    instance: Any | None = None
    """A pre-built instance of the provided dependency, if applicable."""
    concrete_type: ConcreteTypeProvider[Any] | None = None
    """A class instantiated with its resolved constructor dependencies, if applicable."""
    factory: FactoryProvider[Any] | None = None
    """A callable invoked with its resolved dependencies, if applicable."""
    generator: GeneratorProvider[Any] | None = None
    """A generator function whose first yield is the dependency, if applicable."""
    dependencies: list[ProviderDependency] = field(default_factory=list)
    """Dependencies resolved and passed to the provider on activation."""

    lifetime: Lifetime = Lifetime.SCOPED
    """Sharing policy of the produced instance."""

    slot: ProviderSlot = field(init=False)
    """Cache key for instances produced by this registration."""

    def __post_init__(self) -> None:
        self.__class__.SLOT_COUNTER += 1
        self.slot = self.SLOT_COUNTER

    @property
    def is_instance(self) -> bool:
        return self.concrete_type is None and self.factory is None and self.generator is None

    @property
    def provider(self) -> Callable[..., Any]:
        """Return the callable that activates this registration."""
        if self.concrete_type is not None:
            return self.concrete_type
        if self.factory is not None:
            return self.factory
        if self.generator is not None:
            return self.generator
        msg = f"Instance registration for {self.provides!r} has no provider callable."
        raise TypeError(msg)


class ProvidersRegistrations:
    """Holds the provider specifications registered directly in one scope."""

    def __init__(self) -> None:
        self._registrations_by_type: dict[UserDependency, ProviderSpec] = {}

    def add(self, spec: ProviderSpec) -> None:
        """Add a provider specification, replacing any previous one for the same key."""
        self._registrations_by_type.pop(spec.provides, None)
        self._registrations_by_type[spec.provides] = spec

    def find_by_type(self, dep_type: UserDependency) -> ProviderSpec | None:
        """Return the registration for exactly ``dep_type``, or ``None``."""
        return self._registrations_by_type.get(dep_type)

    def find_all_by_base(self, base_key: UserDependency) -> list[ProviderSpec]:
        """Get the plain and component-keyed specifications for ``base_key``."""
        return [
            spec
            for key, spec in self._registrations_by_type.items()
            if key == base_key or component_base_key(key) == base_key
        ]

    def values(self) -> list[ProviderSpec]:
        """Get all provider specifications in registration order."""
        return list(self._registrations_by_type.values())

    def __contains__(self, dep_type: object) -> bool:
        return dep_type in self._registrations_by_type

    def __iter__(self) -> Iterator[ProviderSpec]:
        return iter(self.values())

    def __len__(self) -> int:
        return len(self._registrations_by_type)


@dataclass(slots=True)
class ProviderDependency:
    """One constructor or factory parameter that is filled from the scope."""

    provides: UserDependency
    parameter: Parameter

    @property
    def has_default(self) -> bool:
        return self.parameter.default is not Parameter.empty


@dataclass(slots=True)
class ProviderDependenciesExtractor:
    """Reads the injectable parameters of constructors and factories.

    Variadic parameters are never injected, and neither are unannotated
    parameters that have a default. Any other unannotated parameter is an error,
    since there is no key to resolve it by.
    """

    def extract_from_concrete_type(
        self,
        concrete_type: ConcreteTypeProvider[Any],
    ) -> list[ProviderDependency]:
        return self._collect(concrete_type.__init__, concrete_type.__qualname__, bound=True)

    def extract_from_factory(
        self,
        factory: FactoryProvider[Any] | GeneratorProvider[Any],
    ) -> list[ProviderDependency]:
        name = getattr(factory, "__qualname__", None) or repr(factory)
        return self._collect(factory, name, bound=False)

    def _collect(
        self,
        provider: Callable[..., Any],
        provider_name: str,
        *,
        bound: bool,
    ) -> list[ProviderDependency]:
        parameters = list(inspect.signature(provider).parameters.values())
        if bound and parameters and parameters[0].name in _RECEIVER_NAMES:
            del parameters[0]

        try:
            hints = get_type_hints(provider, include_extras=True)
            hints_error: Exception | None = None
        except (AttributeError, NameError, TypeError) as error:
            hints, hints_error = {}, error

        dependencies: list[ProviderDependency] = []
        for parameter in parameters:
            if parameter.kind in _VARIADIC_KINDS:
                continue
            dependency = self._dependency_for(parameter, hints, hints_error, provider_name)
            if dependency is not None:
                dependencies.append(dependency)
        return dependencies

    def _dependency_for(
        self,
        parameter: Parameter,
        hints: dict[str, Any],
        hints_error: Exception | None,
        provider_name: str,
    ) -> ProviderDependency | None:
        if parameter.name in hints:
            return ProviderDependency(provides=hints[parameter.name], parameter=parameter)

        # String annotations left unevaluated are only usable through get_type_hints.
        annotation = parameter.annotation
        if annotation is not Parameter.empty and not isinstance(annotation, str):
            return ProviderDependency(provides=annotation, parameter=parameter)

        if parameter.default is not Parameter.empty:
            return None

        msg = (
            f"Cannot infer what to inject for parameter '{parameter.name}' of "
            f"'{provider_name}'. Annotate it with a type or give it a default."
        )
        if hints_error is None:
            raise SubwireProviderDependencyInferenceError(msg)
        msg = f"{msg} Original annotation error: {hints_error}"
        raise SubwireProviderDependencyInferenceError(msg) from hints_error
