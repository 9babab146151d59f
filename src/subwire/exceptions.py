from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class SubwireError(Exception):
    """Represent a base class for all subwire-specific failures.

    Catch this type when you want to handle any subwire error path without
    matching each concrete exception class individually.
    """


class SubwireInvalidRegistrationError(SubwireError):
    """Signal an invalid registration or override argument.

    Raised by ``add_instance``/``add_concrete``/``add_factory``/``add_generator``,
    by the ``AutoSubstitute.provide*`` overrides and by registration sources when
    a dependency key is ``None`` or an implementation cannot be constructed.
    """


class SubwireInvalidProviderSpecError(SubwireError):
    """Signal an invalid provider specification payload."""


class SubwireProviderDependencyInferenceError(SubwireInvalidProviderSpecError):
    """Signal that required provider dependencies cannot be inferred.

    Common triggers are missing or unresolvable type annotations on required
    constructor or factory parameters.
    """


class SubwireDependencyNotRegisteredError(SubwireError):
    """Signal that a dependency key has no way to be resolved.

    No explicit registration, override, concrete-type source or substitute
    source could supply the key. ``chain`` lists every key from the top-level
    request down to the failing one, so a missing registration deep inside a
    graph can be traced back to the service the test asked for.

    Typical fixes include registering the dependency explicitly, overriding it
    with ``AutoSubstitute.provide_instance``, or adding a default value to the
    constructor parameter that requests it.
    """

    def __init__(self, dependency: Any, chain: Sequence[Any] = ()) -> None:
        self.dependency = dependency
        self.chain = tuple(chain) or (dependency,)
        msg = f"Dependency {_describe(dependency)} is not registered and cannot be resolved."
        if len(self.chain) > 1:
            msg = f"{msg} Resolution chain: {_describe_chain(self.chain)}."
        super().__init__(msg)


class SubwireCircularDependencyError(SubwireError):
    """Signal that a dependency (directly or indirectly) requires itself."""

    def __init__(self, dependency: Any, chain: Sequence[Any]) -> None:
        self.dependency = dependency
        self.chain = tuple(chain)
        msg = (
            f"Circular dependency detected while resolving {_describe(dependency)}: "
            f"{_describe_chain(self.chain)}."
        )
        super().__init__(msg)


class SubwireScopeDisposedError(SubwireError):
    """Signal use of a lifetime scope or container after it was closed.

    Raised by ``resolve``, ``begin_scope`` and registration methods of a closed
    scope. ``AutoSubstitute`` does not guard its own methods after ``dispose``;
    this error surfaces from the underlying scope instead.
    """


def _describe(dependency: Any) -> str:
    qualname = getattr(dependency, "__qualname__", None)
    if isinstance(dependency, type) and qualname is not None:
        return f"'{qualname}'"
    return f"'{dependency!r}'"


def _describe_chain(chain: Sequence[Any]) -> str:
    return " -> ".join(_describe(dependency) for dependency in chain)
