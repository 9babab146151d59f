from __future__ import annotations

import functools
import inspect
import logging
import weakref
from contextlib import ExitStack
from types import TracebackType
from typing import TYPE_CHECKING, Any, Literal, TypeVar, overload

from subwire._internal.validators import DependencyRegistrationValidator, is_infer
from subwire.container import Container
from subwire.exceptions import SubwireInvalidRegistrationError
from subwire.providers import Lifetime, ProviderDependenciesExtractor, ProviderSpec
from subwire.scope import LifetimeScope
from subwire.sources import AnyConcreteTypeSource, SubstituteSource
from subwire.substitutes import MockSubstituteFactory, SubstituteFactory

if TYPE_CHECKING:
    from typing_extensions import Self

T = TypeVar("T")

logger = logging.getLogger(__name__)


class AutoSubstitute:
    """Resolve a system under test with every collaborator wired automatically.

    Concrete classes are built with their real constructors. Abstract classes and
    protocols that nobody registered are replaced by loose substitutes that never
    raise on unconfigured calls. Each resolved instance is shared within the
    current scope, so the substitute a test configures is the one the system
    under test receives.

    The ``provide*`` methods layer overrides. Each one begins a child scope of
    the current scope, registers the override there and makes that scope the new
    current scope; the override stays in effect until ``dispose``. Instances
    resolved before an override keep their original collaborators.

    Examples:
        .. code-block:: python

            with AutoSubstitute() as auto:
                clock = auto.provide_instance(FixedClock(2024), provides=Clock)
                service = auto.resolve(BillingService)

                service.charge(user_id=1)

                auto.resolve(PaymentGateway).charge.assert_called_once()

    """

    def __init__(
        self,
        container: Container | None = None,
        *,
        substitute_factory: SubstituteFactory | None = None,
    ) -> None:
        """Configure ``container`` for auto-resolution and begin the base scope.

        Args:
            container: Optional container holding explicit registrations. They
                take precedence over both automatic rules. A new empty container
                is used when omitted.
            substitute_factory: Generator of loose and partial substitutes.
                Defaults to ``MockSubstituteFactory``.

        """
        if container is None:
            container = Container()
        if substitute_factory is None:
            substitute_factory = MockSubstituteFactory()

        container.add_source(AnyConcreteTypeSource(lifetime=Lifetime.SCOPED))
        container.add_source(SubstituteSource(substitute_factory))
        container.compile()

        self._container = container
        self._substitute_factory = substitute_factory
        self._provider_dependencies_extractor = ProviderDependenciesExtractor()
        self._validator = DependencyRegistrationValidator()
        self._base_scope = container.begin_scope()
        self._scopes: list[LifetimeScope] = []
        self._finalizer = weakref.finalize(
            self,
            _release,
            self._scopes,
            self._base_scope,
            container,
        )

    @property
    def container(self) -> Container:
        """Return the underlying container for advanced direct registration."""
        return self._container

    @property
    def substitute_factory(self) -> SubstituteFactory:
        """Return the factory that generates loose and partial substitutes."""
        return self._substitute_factory

    @property
    def current_scope(self) -> LifetimeScope:
        """Return the innermost override scope, or the base scope without overrides."""
        if self._scopes:
            return self._scopes[-1]
        return self._base_scope

    @property
    def scopes(self) -> tuple[LifetimeScope, ...]:
        """Return the override scopes in creation order."""
        return tuple(self._scopes)

    @property
    def is_disposed(self) -> bool:
        """Return whether ``dispose`` has run, explicitly or through garbage collection."""
        return not self._finalizer.alive

    @overload
    def resolve(self, dependency: type[T], **parameters: Any) -> T: ...

    @overload
    def resolve(self, dependency: Any, **parameters: Any) -> Any: ...

    def resolve(self, dependency: Any, **parameters: Any) -> Any:
        """Resolve ``dependency`` from the current scope.

        Args:
            dependency: Dependency key to resolve.
            **parameters: Constructor arguments, by name, for the requested
                component when this call creates it.

        Raises:
            SubwireDependencyNotRegisteredError: If neither a registration, the
                concrete-type source nor the substitute source can supply the key.

        """
        return self.current_scope.resolve(dependency, **parameters)

    @overload
    def provide(self, service: type[T], implementation: type[Any], **parameters: Any) -> T: ...

    @overload
    def provide(self, service: Any, implementation: type[Any], **parameters: Any) -> Any: ...

    def provide(self, service: Any, implementation: type[Any], **parameters: Any) -> Any:
        """Make ``implementation`` the provider of ``service`` and resolve it.

        Args:
            service: Dependency key to override.
            implementation: Concrete class built with its resolved constructor
                dependencies whenever ``service`` is requested.
            **parameters: Constructor arguments, by name, for ``implementation``.

        Returns:
            The ``implementation`` instance now shared as ``service``.

        Raises:
            SubwireInvalidRegistrationError: If ``service`` is ``None`` or
                ``implementation`` is not an instantiable class.

        """
        self._validator.validate_provides(service, method_name="provide")
        self._validator.validate_concrete_type(implementation)

        scope = self._push_scope()
        scope.add_concrete(implementation, provides=service, lifetime=Lifetime.SCOPED)
        return scope.resolve(service, **parameters)

    def provide_instance(
        self,
        instance: T,
        *,
        provides: Any | Literal["infer"] = "infer",
    ) -> T:
        """Make ``instance`` the provider of ``provides`` and return it.

        Args:
            instance: Object returned for every later request of ``provides``.
            provides: Dependency key to override. ``"infer"`` uses
                ``type(instance)``.

        Returns:
            ``instance`` itself, resolved through the new scope.

        Raises:
            SubwireInvalidRegistrationError: If ``provides`` is ``None``.

        """
        resolved_provides = type(instance) if is_infer(provides) else provides
        self._validator.validate_provides(resolved_provides, method_name="provide_instance")

        scope = self._push_scope()
        scope.add_instance(instance, provides=resolved_provides)
        return scope.resolve(resolved_provides)

    @overload
    def provide_substitute_of(
        self,
        service: type[T],
        implementation: type[Any],
        **parameters: Any,
    ) -> T: ...

    @overload
    def provide_substitute_of(
        self,
        service: Any,
        implementation: type[Any],
        **parameters: Any,
    ) -> Any: ...

    def provide_substitute_of(
        self,
        service: Any,
        implementation: type[Any],
        **parameters: Any,
    ) -> Any:
        """Make a partial substitute of ``implementation`` the provider of ``service``.

        The partial substitute is a real ``implementation`` instance, built with
        its resolved constructor dependencies, whose public methods record calls
        and run the real code until the test configures them.

        Args:
            service: Dependency key to override.
            implementation: Class to partially substitute. Abstract members
                return defaults.
            **parameters: Constructor arguments, by name, for ``implementation``.

        Returns:
            The partial substitute now shared as ``service``.

        Raises:
            SubwireInvalidRegistrationError: If ``service`` is ``None`` or
                ``implementation`` is not a class.

        """
        self._validator.validate_provides(service, method_name="provide_substitute_of")
        if not inspect.isclass(implementation):
            msg = f"Partial substitute target must be a class, got {implementation!r}."
            raise SubwireInvalidRegistrationError(msg)

        scope = self._push_scope()
        scope.registrations.add(
            ProviderSpec(
                provides=service,
                factory=functools.partial(self._substitute_factory.create_partial, implementation),
                dependencies=self._provider_dependencies_extractor.extract_from_concrete_type(
                    implementation,
                ),
                lifetime=Lifetime.SCOPED,
            ),
        )
        return scope.resolve(service, **parameters)

    def dispose(self) -> None:
        """Close every override scope in reverse creation order, then the container.

        Only the first call has an effect.
        """
        self._finalizer()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.dispose()

    def _push_scope(self) -> LifetimeScope:
        scope = self.current_scope.begin_scope()
        self._scopes.append(scope)
        logger.debug("Pushed override scope %d", len(self._scopes))
        return scope


def _release(
    scopes: list[LifetimeScope],
    base_scope: LifetimeScope,
    container: Container,
) -> None:
    # Callbacks run LIFO and a failing close does not stop the ones after it.
    with ExitStack() as stack:
        stack.callback(container.close)
        stack.callback(base_scope.close)
        for scope in scopes:
            stack.callback(scope.close)
        scopes.clear()
    logger.debug("Disposed auto-substitute container")
