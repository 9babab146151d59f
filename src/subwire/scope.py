from __future__ import annotations

import logging
from collections.abc import Generator, Mapping
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from inspect import Parameter
from types import TracebackType
from typing import TYPE_CHECKING, Any, Literal, TypeVar, cast, get_args, get_type_hints, overload

from subwire._internal.type_checks import CollectionRequest, collection_request
from subwire._internal.validators import DependencyRegistrationValidator, is_infer
from subwire.exceptions import (
    SubwireCircularDependencyError,
    SubwireDependencyNotRegisteredError,
    SubwireInvalidRegistrationError,
    SubwireScopeDisposedError,
)
from subwire.providers import (
    FactoryProvider,
    GeneratorProvider,
    Lifetime,
    ProviderDependenciesExtractor,
    ProviderDependency,
    ProviderSpec,
    ProvidersRegistrations,
)

if TYPE_CHECKING:
    from typing_extensions import Self

    from subwire.container import Container

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _ResolutionContext:
    """Bookkeeping for a single top-level ``resolve`` call."""

    chain: list[Any] = field(default_factory=list)
    """Keys currently being activated, outermost first."""
    created: list[tuple[dict[int, Any], int]] = field(default_factory=list)
    """Cache entries written during the call, dropped again if the call fails."""

    def rollback(self, mark: int = 0) -> None:
        """Drop the cache entries written after ``mark``, newest first."""
        while len(self.created) > mark:
            cache, slot = self.created.pop()
            cache.pop(slot, None)


class LifetimeScope:
    """Resolve dependencies and own the instances shared within one lifetime.

    A scope resolves a key from its own registrations first, then from its
    parent chain, and finally from the container's registration sources.
    ``Lifetime.SCOPED`` instances are cached in the scope that resolves them, so
    a child scope gets its own instance even for a registration inherited from
    an ancestor. ``Lifetime.SINGLETON`` instances are cached in the scope that
    holds the registration.

    Registrations added to a child scope are incremental: they shadow the parent's
    registrations for the same key and disappear when the scope is closed.

    Examples:
        .. code-block:: python

            with container.begin_scope() as scope:
                scope.add_instance(FakeClock(), provides=Clock)
                service = scope.resolve(Service)

    """

    def __init__(
        self,
        *,
        parent: LifetimeScope | None = None,
        default_lifetime: Lifetime = Lifetime.SCOPED,
    ) -> None:
        self._parent = parent
        self._root: Container = parent._root if parent is not None else cast("Container", self)
        self._depth: int = parent._depth + 1 if parent is not None else 0
        self._default_lifetime = default_lifetime

        self._providers_registrations = ProvidersRegistrations()
        self._provider_dependencies_extractor = ProviderDependenciesExtractor()
        self._dependency_registration_validator = DependencyRegistrationValidator()

        self._instances: dict[int, Any] = {}
        self._exit_stack = ExitStack()
        self._closed = False

    @property
    def parent(self) -> LifetimeScope | None:
        """Return the enclosing scope, or ``None`` for the container itself."""
        return self._parent

    @property
    def depth(self) -> int:
        """Return the nesting depth; the container is ``0``."""
        return self._depth

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def registrations(self) -> ProvidersRegistrations:
        """Return the registrations added directly to this scope."""
        return self._providers_registrations

    # region Registration Methods
    def add_instance(
        self,
        instance: Any,
        *,
        provides: Any | Literal["infer"] = "infer",
    ) -> None:
        """Register a pre-built instance as a provider.

        Every resolution of ``provides`` in this scope and its children returns
        exactly ``instance``. Re-registering the same key overrides the previous
        registration.

        Args:
            instance: Instance value to return on resolution.
            provides: Dependency key to bind. Use ``"infer"`` to bind by
                ``type(instance)``.

        Raises:
            SubwireInvalidRegistrationError: If ``provides`` is ``None``.
            SubwireScopeDisposedError: If the scope is closed.

        """
        self._ensure_open()
        resolved_provides = type(instance) if is_infer(provides) else provides
        self._dependency_registration_validator.validate_provides(
            resolved_provides,
            method_name="add_instance",
        )
        self._providers_registrations.add(
            ProviderSpec(
                provides=resolved_provides,
                instance=instance,
                lifetime=Lifetime.SINGLETON,
            ),
        )

    def add_concrete(
        self,
        concrete_type: type[Any],
        *,
        provides: Any | Literal["infer"] = "infer",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register a concrete type provider.

        Constructor dependencies are inferred from ``__init__`` annotations and
        resolved from the resolving scope on activation.

        Args:
            concrete_type: Concrete class to instantiate.
            provides: Dependency key produced by this provider. ``"infer"`` uses
                ``concrete_type`` directly.
            lifetime: Provider lifetime, or ``"from_container"`` to inherit the
                container default.

        Raises:
            SubwireInvalidRegistrationError: If ``concrete_type`` is not an
                instantiable class or ``provides`` is ``None``.
            SubwireProviderDependencyInferenceError: If a required constructor
                parameter has no usable annotation.
            SubwireScopeDisposedError: If the scope is closed.

        """
        self._ensure_open()
        self._dependency_registration_validator.validate_concrete_type(concrete_type)
        resolved_provides = concrete_type if is_infer(provides) else provides
        self._dependency_registration_validator.validate_provides(
            resolved_provides,
            method_name="add_concrete",
        )
        self._providers_registrations.add(
            ProviderSpec(
                provides=resolved_provides,
                concrete_type=concrete_type,
                dependencies=self._provider_dependencies_extractor.extract_from_concrete_type(
                    concrete_type,
                ),
                lifetime=self._resolve_registration_lifetime(lifetime),
            ),
        )

    def add_factory(
        self,
        factory: FactoryProvider[Any],
        *,
        provides: Any | Literal["infer"] = "infer",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register a factory function provider.

        Args:
            factory: Callable whose parameters are resolved as dependencies.
            provides: Dependency key produced by the factory. ``"infer"`` reads
                the return annotation.
            lifetime: Provider lifetime, or ``"from_container"`` to inherit the
                container default.

        Raises:
            SubwireInvalidRegistrationError: If ``factory`` is not callable or
                ``provides`` cannot be inferred.
            SubwireScopeDisposedError: If the scope is closed.

        """
        self._ensure_open()
        self._dependency_registration_validator.validate_callable(
            factory,
            method_name="add_factory",
        )
        resolved_provides = (
            self._infer_return_type(factory, method_name="add_factory")
            if is_infer(provides)
            else provides
        )
        self._dependency_registration_validator.validate_provides(
            resolved_provides,
            method_name="add_factory",
        )
        self._providers_registrations.add(
            ProviderSpec(
                provides=resolved_provides,
                factory=factory,
                dependencies=self._provider_dependencies_extractor.extract_from_factory(factory),
                lifetime=self._resolve_registration_lifetime(lifetime),
            ),
        )

    def add_generator(
        self,
        generator: GeneratorProvider[Any],
        *,
        provides: Any | Literal["infer"] = "infer",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register a generator provider with cleanup.

        The first yielded value is the dependency. The generator is resumed when
        the scope that owns the instance is closed, so code after ``yield`` runs
        as cleanup in reverse creation order.

        Args:
            generator: Generator function whose parameters are resolved as
                dependencies.
            provides: Dependency key produced by the generator. ``"infer"`` reads
                the ``Generator[T, ...]`` return annotation.
            lifetime: Provider lifetime, or ``"from_container"`` to inherit the
                container default.

        Raises:
            SubwireInvalidRegistrationError: If ``generator`` is not a generator
                function or ``provides`` cannot be inferred.
            SubwireScopeDisposedError: If the scope is closed.

        Examples:
            .. code-block:: python

                def open_session(engine: Engine) -> Generator[Session, None, None]:
                    session = Session(engine)
                    try:
                        yield session
                    finally:
                        session.close()


                container.add_generator(open_session)

        """
        self._ensure_open()
        self._dependency_registration_validator.validate_generator(generator)
        if is_infer(provides):
            return_type = self._infer_return_type(generator, method_name="add_generator")
            yield_args = get_args(return_type)
            resolved_provides = yield_args[0] if yield_args else None
        else:
            resolved_provides = provides
        self._dependency_registration_validator.validate_provides(
            resolved_provides,
            method_name="add_generator",
        )
        self._providers_registrations.add(
            ProviderSpec(
                provides=resolved_provides,
                generator=generator,
                dependencies=self._provider_dependencies_extractor.extract_from_factory(
                    generator,
                ),
                lifetime=self._resolve_registration_lifetime(lifetime),
            ),
        )

    def _resolve_registration_lifetime(
        self,
        lifetime: Lifetime | Literal["from_container"],
    ) -> Lifetime:
        if lifetime == "from_container":
            return self._default_lifetime
        if not isinstance(lifetime, Lifetime):
            msg = f"Invalid lifetime {lifetime!r}; expected a Lifetime member."
            raise SubwireInvalidRegistrationError(msg)
        return lifetime

    def _infer_return_type(self, provider: Any, *, method_name: str) -> Any:
        try:
            return_type = get_type_hints(provider).get("return")
        except (AttributeError, NameError, TypeError) as error:
            msg = f"{method_name}() could not read the return annotation of {provider!r}."
            raise SubwireInvalidRegistrationError(msg) from error
        if return_type is None:
            msg = (
                f"{method_name}() could not infer 'provides' for {provider!r}; "
                "add a return annotation or pass provides=..."
            )
            raise SubwireInvalidRegistrationError(msg)
        return return_type

    # endregion Registration Methods

    # region Resolution and Scope Management
    @overload
    def resolve(self, dependency: type[T], **parameters: Any) -> T: ...

    @overload
    def resolve(self, dependency: Any, **parameters: Any) -> Any: ...

    def resolve(self, dependency: Any, **parameters: Any) -> Any:
        """Resolve a dependency from this scope.

        Args:
            dependency: Dependency key to resolve.
            **parameters: Constructor or factory arguments, by parameter name,
                used instead of resolved dependencies when the requested
                component is created by this call. Ignored when a shared
                instance already exists.

        Returns:
            Resolved dependency value.

        Raises:
            SubwireInvalidRegistrationError: If ``dependency`` is ``None``.
            SubwireDependencyNotRegisteredError: If no registration, parent
                registration or registration source can supply the key (or a
                required dependency of it).
            SubwireCircularDependencyError: If the graph contains a cycle.
            SubwireScopeDisposedError: If the scope is closed.

        Notes:
            A failed call leaves no new instance cached in any scope.

        """
        self._ensure_open()
        if dependency is None:
            msg = "resolve() parameter 'dependency' must not be None."
            raise SubwireInvalidRegistrationError(msg)
        self._root.compile()

        context = _ResolutionContext()
        try:
            return self._resolve(dependency, context, parameters)
        except Exception:
            context.rollback()
            raise

    def begin_scope(self) -> LifetimeScope:
        """Begin a child scope whose registrations shadow this scope's.

        Returns:
            A new open ``LifetimeScope`` whose parent is this scope. The caller
            owns it and must close it (``with`` or ``close()``).

        Raises:
            SubwireScopeDisposedError: If the scope is closed.

        """
        self._ensure_open()
        self._root.compile()
        scope = LifetimeScope(parent=self, default_lifetime=self._default_lifetime)
        logger.debug("Began lifetime scope at depth %d", scope.depth)
        return scope

    def close(self) -> None:
        """Close the scope and run its cleanup callbacks in reverse order.

        Only resources created by this scope are released; parent scopes are left
        untouched. Closing an already closed scope does nothing.
        """
        if self._closed:
            return
        self._closed = True
        try:
            self._exit_stack.close()
        finally:
            self._instances.clear()
        logger.debug("Closed lifetime scope at depth %d", self._depth)

    def __enter__(self) -> Self:
        """Enter the scope context."""
        self._ensure_open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Exit the scope context and close the scope."""
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"{type(self).__name__}(depth={self._depth}, {state})"

    # endregion Resolution and Scope Management

    def _ensure_open(self) -> None:
        if self._closed:
            msg = f"{self!r} has already been disposed."
            raise SubwireScopeDisposedError(msg)

    def _resolve(
        self,
        dependency: Any,
        context: _ResolutionContext,
        parameters: Mapping[str, Any],
    ) -> Any:
        if dependency in context.chain:
            raise SubwireCircularDependencyError(dependency, (*context.chain, dependency))

        spec, owner = self._find_registration(dependency)
        if spec is None:
            collection = collection_request(dependency)
            if collection is not None:
                return self._resolve_collection(collection, context)
            spec, owner = self._root.registration_from_sources(dependency), self._root
        if spec is None:
            raise SubwireDependencyNotRegisteredError(dependency, (*context.chain, dependency))

        context.chain.append(dependency)
        try:
            return self._activate(spec, owner, context, parameters)
        finally:
            context.chain.pop()

    def _find_registration(self, dependency: Any) -> tuple[ProviderSpec | None, LifetimeScope]:
        for scope in self._lineage():
            spec = scope._providers_registrations.find_by_type(dependency)
            if spec is not None:
                return spec, scope
        return None, self._root

    def _activate(
        self,
        spec: ProviderSpec,
        owner: LifetimeScope,
        context: _ResolutionContext,
        parameters: Mapping[str, Any],
    ) -> Any:
        if spec.is_instance:
            return spec.instance

        if spec.lifetime is Lifetime.TRANSIENT:
            return self._create(spec, context, parameters)

        activator = owner if spec.lifetime is Lifetime.SINGLETON else self
        cache = activator._instances
        if spec.slot in cache:
            return cache[spec.slot]

        instance = activator._create(spec, context, parameters)
        cache[spec.slot] = instance
        context.created.append((cache, spec.slot))
        return instance

    def _create(
        self,
        spec: ProviderSpec,
        context: _ResolutionContext,
        parameters: Mapping[str, Any],
    ) -> Any:
        values = self._resolve_dependencies(spec.dependencies, context, parameters)
        args, kwargs = _build_call_arguments(spec.dependencies, values, parameters)
        if spec.generator is not None:
            managed = contextmanager(spec.generator)(*args, **kwargs)
            return self._exit_stack.enter_context(managed)
        return spec.provider(*args, **kwargs)

    def _resolve_dependencies(
        self,
        dependencies: list[ProviderDependency],
        context: _ResolutionContext,
        parameters: Mapping[str, Any],
    ) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for dependency in dependencies:
            name = dependency.parameter.name
            if name in parameters:
                continue
            mark = len(context.created)
            try:
                values[name] = self._resolve(dependency.provides, context, {})
            except SubwireDependencyNotRegisteredError:
                if not dependency.has_default:
                    raise
                # The parameter keeps its default; nothing built for it stays cached.
                context.rollback(mark)
        return values

    def _resolve_collection(
        self,
        collection: CollectionRequest,
        context: _ResolutionContext,
    ) -> Any:
        keys: dict[Any, None] = {}
        for scope in reversed(list(self._lineage())):
            for spec in scope._providers_registrations.find_all_by_base(collection.item_key):
                keys.setdefault(spec.provides)
        return collection.build([self._resolve(key, context, {}) for key in keys])

    def _lineage(self) -> Generator[LifetimeScope, None, None]:
        scope: LifetimeScope | None = self
        while scope is not None:
            yield scope
            scope = scope._parent


def _build_call_arguments(
    dependencies: list[ProviderDependency],
    values: Mapping[str, Any],
    parameters: Mapping[str, Any],
) -> tuple[list[Any], dict[str, Any]]:
    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    dependency_names = set()
    for dependency in dependencies:
        parameter = dependency.parameter
        dependency_names.add(parameter.name)
        if parameter.name in parameters:
            value = parameters[parameter.name]
        elif parameter.name in values:
            value = values[parameter.name]
        elif parameter.kind is Parameter.POSITIONAL_ONLY:
            value = parameter.default
        else:
            continue

        if parameter.kind is Parameter.POSITIONAL_ONLY:
            args.append(value)
        else:
            kwargs[parameter.name] = value

    kwargs.update(
        (name, value) for name, value in parameters.items() if name not in dependency_names
    )
    return args, kwargs
