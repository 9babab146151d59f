from __future__ import annotations

import collections.abc
import inspect
import types
from collections.abc import Callable
from typing import Annotated, Any, Protocol, TypeVar, Union, get_args, get_origin, get_type_hints
from unittest import mock

from subwire._internal.type_checks import (
    is_abstract_class,
    is_library_class,
    is_protocol_class,
    runtime_class_of,
)

T = TypeVar("T")

_NO_DEFAULT: Any = object()
_DEFAULT_FACTORIES: dict[Any, Callable[[], Any]] = {
    bool: bool,
    int: int,
    float: float,
    complex: complex,
    str: str,
    bytes: bytes,
    bytearray: bytearray,
    list: list,
    dict: dict,
    set: set,
    frozenset: frozenset,
    tuple: tuple,
    collections.abc.Sequence: tuple,
    collections.abc.Iterable: tuple,
    collections.abc.Collection: tuple,
    collections.abc.Mapping: dict,
    collections.abc.MutableMapping: dict,
    collections.abc.MutableSequence: list,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
}


class SubstituteFactory(Protocol):
    """Generate substitutes for the container.

    ``create`` must never return an object that raises on an unconfigured call.
    ``create_partial`` must run the real implementation for every member the
    test has not configured.
    """

    def create(self, dependency: Any) -> Any:
        """Return a loose substitute implementing ``dependency``."""
        ...

    def create_partial(self, concrete_type: type[T], /, *args: Any, **kwargs: Any) -> T:
        """Return a partial substitute of ``concrete_type`` built from ``args``/``kwargs``."""
        ...


class MockSubstituteFactory:
    """Generate substitutes with :mod:`unittest.mock`.

    Loose substitutes are ``create_autospec(..., instance=True)`` mocks: calls
    are checked against the real signatures, recorded for ``assert_called_*``
    and answered with a value derived from the return annotation (``None``,
    ``False``, ``0``, ``""``, an empty container, or a nested substitute for an
    abstract return type). Configure behavior through ``return_value`` and
    ``side_effect`` as with any mock.

    Partial substitutes are real instances whose public methods are replaced by
    ``MagicMock(wraps=...)``. Unconfigured methods run the real code; methods
    with a configured ``return_value`` or ``side_effect`` do not.

    Examples:
        .. code-block:: python

            factory = MockSubstituteFactory()

            repository = factory.create(Repository)
            repository.get.return_value = User(name="ada")

            mailer = factory.create_partial(SmtpMailer, host="localhost")
            mailer.send.return_value = True  # the real send() is not called

    """

    def __init__(self) -> None:
        self._creating: set[type[Any]] = set()

    def create(self, dependency: Any) -> Any:
        target = runtime_class_of(dependency)
        if target is None:
            msg = f"Cannot generate a substitute for {dependency!r}; expected a class."
            raise TypeError(msg)

        substitute = mock.create_autospec(target, instance=True)
        self._creating.add(target)
        try:
            self._configure_defaults(substitute, target)
        finally:
            self._creating.discard(target)
        return substitute

    def create_partial(self, concrete_type: type[T], /, *args: Any, **kwargs: Any) -> T:
        target = runtime_class_of(concrete_type)
        if target is None:
            msg = f"Cannot generate a partial substitute for {concrete_type!r}; expected a class."
            raise TypeError(msg)

        instance = self._instantiable(target)(*args, **kwargs)
        for name, function in _public_functions(target):
            member = getattr(instance, name)
            mock_class = mock.AsyncMock if inspect.iscoroutinefunction(function) else mock.MagicMock
            setattr(instance, name, mock_class(wraps=member, name=f"{target.__qualname__}.{name}"))
        return instance

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def _configure_defaults(self, substitute: Any, target: type[Any]) -> None:
        for name in dir(target):
            if name.startswith("_"):
                continue
            attribute = inspect.getattr_static(target, name, None)
            if isinstance(attribute, property):
                value = self._default_for(_return_hint(attribute.fget))
                if value is not _NO_DEFAULT:
                    setattr(substitute, name, value)
                continue
            function = _unwrap_function(attribute)
            if function is None:
                continue
            value = self._default_for(_return_hint(function))
            if value is not _NO_DEFAULT:
                getattr(substitute, name).return_value = value

        if is_protocol_class(target):
            for name, hint in _type_hints(target).items():
                if name.startswith("_") or hasattr(target, name):
                    continue
                value = self._default_for(hint)
                setattr(substitute, name, None if value is _NO_DEFAULT else value)

    def _default_for(self, hint: Any) -> Any:
        if hint is _NO_DEFAULT:
            return _NO_DEFAULT
        if hint is None or hint is type(None):
            return None

        origin = get_origin(hint)
        if origin is Annotated:
            return self._default_for(get_args(hint)[0])
        if origin in (Union, types.UnionType):
            if type(None) in get_args(hint):
                return None
            return _NO_DEFAULT

        factory = _DEFAULT_FACTORIES.get(origin or hint)
        if factory is not None:
            return factory()

        target = runtime_class_of(hint)
        if (
            target is not None
            and is_abstract_class(target)
            and not is_library_class(target)
            and target not in self._creating
        ):
            return self.create(hint)
        return _NO_DEFAULT

    def _instantiable(self, target: type[Any]) -> type[Any]:
        if not (inspect.isabstract(target) or is_protocol_class(target)):
            return target

        namespace: dict[str, Any] = {
            "__module__": target.__module__,
            "__qualname__": target.__qualname__,
        }
        for name in getattr(target, "__abstractmethods__", ()):
            attribute = inspect.getattr_static(target, name, None)
            if isinstance(attribute, property):
                namespace[name] = property(_constant(self._default_for(_return_hint(attribute.fget))))
                continue
            function = _unwrap_function(attribute)
            default = self._default_for(_return_hint(function)) if function is not None else None
            namespace[name] = _stub(default, is_async=inspect.iscoroutinefunction(function))
        return type(target.__name__, (target,), namespace)


def _public_functions(target: type[Any]) -> list[tuple[str, Any]]:
    functions = []
    for name in dir(target):
        if name.startswith("_"):
            continue
        function = _unwrap_function(inspect.getattr_static(target, name, None))
        if function is not None:
            functions.append((name, function))
    return functions


def _unwrap_function(attribute: Any) -> Any | None:
    if isinstance(attribute, (staticmethod, classmethod)):
        attribute = attribute.__func__
    if inspect.isfunction(attribute):
        return attribute
    return None


def _return_hint(function: Any) -> Any:
    if function is None:
        return _NO_DEFAULT
    return _type_hints(function).get("return", _NO_DEFAULT)


def _type_hints(obj: Any) -> dict[str, Any]:
    try:
        return get_type_hints(obj, include_extras=True)
    except (AttributeError, NameError, TypeError):
        return {}


def _constant(value: Any) -> Callable[[Any], Any]:
    resolved = None if value is _NO_DEFAULT else value

    def getter(self: Any) -> Any:
        return resolved

    return getter


def _stub(value: Any, *, is_async: bool) -> Callable[..., Any]:
    resolved = None if value is _NO_DEFAULT else value

    if is_async:

        async def async_stub(self: Any, *args: Any, **kwargs: Any) -> Any:
            return resolved

        return async_stub

    def stub(self: Any, *args: Any, **kwargs: Any) -> Any:
        return resolved

    return stub
