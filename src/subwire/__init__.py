from subwire.auto_substitute import AutoSubstitute
from subwire.container import Container
from subwire.exceptions import (
    SubwireCircularDependencyError,
    SubwireDependencyNotRegisteredError,
    SubwireError,
    SubwireInvalidProviderSpecError,
    SubwireInvalidRegistrationError,
    SubwireProviderDependencyInferenceError,
    SubwireScopeDisposedError,
)
from subwire.markers import All, Component
from subwire.providers import Lifetime, ProviderSpec
from subwire.scope import LifetimeScope
from subwire.sources import AnyConcreteTypeSource, RegistrationSource, SubstituteSource
from subwire.startable import Startable
from subwire.substitutes import MockSubstituteFactory, SubstituteFactory

__all__ = [
    "All",
    "AnyConcreteTypeSource",
    "AutoSubstitute",
    "Component",
    "Container",
    "Lifetime",
    "LifetimeScope",
    "MockSubstituteFactory",
    "ProviderSpec",
    "RegistrationSource",
    "Startable",
    "SubstituteFactory",
    "SubstituteSource",
    "SubwireCircularDependencyError",
    "SubwireDependencyNotRegisteredError",
    "SubwireError",
    "SubwireInvalidProviderSpecError",
    "SubwireInvalidRegistrationError",
    "SubwireProviderDependencyInferenceError",
    "SubwireScopeDisposedError",
]
