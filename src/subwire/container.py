from __future__ import annotations

import logging
from typing import Any

from subwire._internal.type_checks import is_runtime_class
from subwire.providers import Lifetime, ProviderSpec
from subwire.scope import LifetimeScope
from subwire.sources import RegistrationSource
from subwire.startable import Startable

logger = logging.getLogger(__name__)


class Container(LifetimeScope):
    """Root lifetime scope that owns registration sources and startup.

    Register services with ``add_instance``/``add_concrete``/``add_factory``/
    ``add_generator``. Keys without an explicit registration in the resolving
    scope chain are offered to the registration sources in the order they were
    added; the first registration a source returns is remembered for the rest
    of the container's life. Explicit registrations always shadow source
    registrations.

    Nested lifetime scopes are opened with ``begin_scope``. Each one is owned by
    its caller; closing the container does not close them.

    Examples:
        .. code-block:: python

            container = Container()
            container.add_concrete(SqlRepository, provides=Repository)
            container.add_source(AnyConcreteTypeSource())

            with container.begin_scope() as scope:
                service = scope.resolve(Service)

    """

    def __init__(self, default_lifetime: Lifetime = Lifetime.SCOPED) -> None:
        """Initialize an empty container.

        Args:
            default_lifetime: Default lifetime used by registrations that omit
                ``lifetime``.

        """
        super().__init__(parent=None, default_lifetime=default_lifetime)
        self._sources: list[RegistrationSource] = []
        self._source_registrations: dict[Any, ProviderSpec] = {}
        self._compiled = False

    @property
    def sources(self) -> tuple[RegistrationSource, ...]:
        """Return the registration sources in consultation order."""
        return tuple(self._sources)

    @property
    def is_compiled(self) -> bool:
        return self._compiled

    def add_source(self, source: RegistrationSource) -> None:
        """Append a registration source consulted for unregistered keys.

        Args:
            source: Object implementing ``RegistrationSource``.

        Raises:
            SubwireScopeDisposedError: If the container is closed.

        """
        self._ensure_open()
        self._sources.append(source)

    def registrations_for(self, dependency: Any) -> list[ProviderSpec]:
        """Return the root-level registrations currently known for ``dependency``."""
        spec = self._providers_registrations.find_by_type(dependency)
        if spec is None:
            spec = self._source_registrations.get(dependency)
        return [spec] if spec is not None else []

    def registration_from_sources(self, dependency: Any) -> ProviderSpec | None:
        """Return the source-provided registration for ``dependency``, asking sources once."""
        spec = self._source_registrations.get(dependency)
        if spec is not None:
            return spec

        for source in self._sources:
            candidates = source.registrations_for(dependency, self.registrations_for)
            if candidates:
                spec = candidates[0]
                self._source_registrations[dependency] = spec
                logger.debug("Registered %r from %r", dependency, source)
                return spec
        return None

    def compile(self) -> None:
        """Finalize the container and start every registered ``Startable``.

        Runs once; later calls do nothing. ``resolve`` and ``begin_scope`` call
        it on first use, so explicit calls are only needed to run startup at a
        chosen point.

        Raises:
            SubwireScopeDisposedError: If the container is closed.

        """
        self._ensure_open()
        if self._compiled:
            return
        self._compiled = True

        for spec in self._providers_registrations.values():
            if not (is_runtime_class(spec.provides) and issubclass(spec.provides, Startable)):
                continue
            component = self.resolve(spec.provides)
            component.start()
            logger.info("Started %r", component)
