from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from subwire._internal.autoregistration import ConcreteTypeAutoregistrationPolicy
from subwire._internal.integrations.pydantic_settings import is_pydantic_settings_subclass
from subwire._internal.type_checks import (
    collection_request,
    is_abstract_class,
    is_collection_class,
    runtime_class_of,
)
from subwire.exceptions import SubwireInvalidRegistrationError
from subwire.providers import Lifetime, ProviderDependenciesExtractor, ProviderSpec
from subwire.startable import Startable

if TYPE_CHECKING:
    from subwire.substitutes import SubstituteFactory

logger = logging.getLogger(__name__)

RegistrationAccessor = Callable[[Any], list[ProviderSpec]]
"""Return the registrations already known for a dependency key."""


class RegistrationSource(Protocol):
    """A rule consulted for dependency keys that have no explicit registration.

    Sources are asked in the order they were added to the container. The first
    source that returns a non-empty list wins and its first registration is
    remembered by the container, so a source is asked at most once per key.
    """

    def registrations_for(
        self,
        dependency: Any,
        registration_accessor: RegistrationAccessor,
    ) -> list[ProviderSpec]:
        """Return registrations able to provide ``dependency``, or an empty list.

        Args:
            dependency: The requested dependency key.
            registration_accessor: Returns existing registrations for other keys.

        """
        ...


class AnyConcreteTypeSource:
    """Provide registrations for any unregistered concrete class.

    The class is built from its own constructor, with every annotated parameter
    resolved through the container. Abstract classes, protocols, builtins and
    value types such as ``datetime`` or ``UUID`` are left to other sources.
    Pydantic settings models are built without arguments and shared per
    container.
    """

    def __init__(
        self,
        *,
        lifetime: Lifetime = Lifetime.SCOPED,
        policy: ConcreteTypeAutoregistrationPolicy | None = None,
    ) -> None:
        self._lifetime = lifetime
        self._policy = policy or ConcreteTypeAutoregistrationPolicy()
        self._provider_dependencies_extractor = ProviderDependenciesExtractor()

    def registrations_for(
        self,
        dependency: Any,
        registration_accessor: RegistrationAccessor,
    ) -> list[ProviderSpec]:
        _ = registration_accessor
        if is_pydantic_settings_subclass(dependency):
            return [
                ProviderSpec(
                    provides=dependency,
                    factory=dependency,
                    lifetime=Lifetime.SINGLETON,
                ),
            ]

        if not self._policy.is_eligible_concrete(dependency):
            return []

        return [
            ProviderSpec(
                provides=dependency,
                concrete_type=dependency,
                dependencies=self._provider_dependencies_extractor.extract_from_concrete_type(
                    dependency,
                ),
                lifetime=self._lifetime,
            ),
        ]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(lifetime={self._lifetime})"


class SubstituteSource:
    """Provide loose substitutes for unregistered abstract classes and protocols.

    A key is eligible when all of the following hold:

    1. it names a single class, optionally parameterized (``Repo[User]``), and is
       not an ``Annotated``/``Component`` key or an ``All[...]`` request;
    2. the class is abstract or a ``typing.Protocol``;
    3. the key is not a "many of T" request (``list[T]``, ``tuple[T, ...]``,
       ``Sequence[T]`` and the like, or their bare classes), since collections
       are aggregated from real registrations instead. Other abstract library
       types such as ``Mapping[str, str]`` or ``Callable[[int], str]`` are
       substituted like any interface;
    4. the class is not a ``Startable``, so startup hooks are never faked.

    An eligible key gets one ``Lifetime.SCOPED`` registration whose factory asks
    the substitute factory for a new loose substitute. Nothing is created until
    the container activates the registration.
    """

    def __init__(self, substitute_factory: SubstituteFactory) -> None:
        self._substitute_factory = substitute_factory

    def registrations_for(
        self,
        dependency: Any,
        registration_accessor: RegistrationAccessor,
    ) -> list[ProviderSpec]:
        _ = registration_accessor
        if dependency is None:
            msg = "registrations_for() parameter 'dependency' must not be None."
            raise SubwireInvalidRegistrationError(msg)

        if not self.is_eligible(dependency):
            return []

        logger.debug("Offering a substitute registration for %r", dependency)
        return [
            ProviderSpec(
                provides=dependency,
                factory=functools.partial(self._substitute_factory.create, dependency),
                lifetime=Lifetime.SCOPED,
            ),
        ]

    def is_eligible(self, dependency: Any) -> bool:
        """Return whether ``dependency`` may be satisfied by a generated substitute."""
        if collection_request(dependency) is not None:
            return False
        target = runtime_class_of(dependency)
        if target is None or not is_abstract_class(target):
            return False
        if is_collection_class(target):
            return False
        return not issubclass(target, Startable)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._substitute_factory!r})"
