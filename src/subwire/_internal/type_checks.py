from __future__ import annotations

import collections.abc
import inspect
import types
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeGuard, get_args, get_origin

from typing_extensions import is_protocol

from subwire.markers import is_all_annotation, strip_all_annotation

_LIBRARY_MODULES = frozenset(
    {
        "builtins",
        "collections.abc",
        "_collections_abc",
        "typing",
        "typing_extensions",
    },
)
_SEQUENCE_ORIGINS: tuple[Any, ...] = (
    collections.abc.Sequence,
    collections.abc.Iterable,
    collections.abc.Collection,
)
_HOMOGENEOUS_TUPLE_ARGS = 2
_COLLECTION_CLASSES: tuple[Any, ...] = (list, tuple, *_SEQUENCE_ORIGINS)


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a runtime class safe for class-only operations.

    Args:
        candidate: Value being checked for eligibility or runtime type constraints.

    """
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


def is_protocol_class(candidate: object) -> bool:
    """Return true when candidate is a ``typing.Protocol`` subclass (not the base itself)."""
    return is_runtime_class(candidate) and is_protocol(candidate)


def is_abstract_class(candidate: object) -> bool:
    """Return true for abstract classes and protocols, which cannot be instantiated."""
    if not is_runtime_class(candidate):
        return False
    return inspect.isabstract(candidate) or is_protocol_class(candidate)


def is_library_class(candidate: type[Any]) -> bool:
    """Return true for builtin and ``collections.abc``/``typing`` container types."""
    return candidate.__module__ in _LIBRARY_MODULES


def is_collection_class(candidate: object) -> bool:
    """Return true for the classes behind "many of T" requests, bare or parameterized."""
    return any(candidate is collection for collection in _COLLECTION_CLASSES)


def runtime_class_of(dependency: Any) -> type[Any] | None:
    """Return the runtime class behind a plain class or a parameterized generic key.

    ``Repository[User]`` maps to ``Repository``. ``Annotated`` keys and anything
    without a class origin map to ``None``.
    """
    if is_runtime_class(dependency):
        return dependency
    origin = get_origin(dependency)
    if is_runtime_class(origin):
        return origin
    return None


@dataclass(frozen=True, slots=True)
class CollectionRequest:
    """A "many of T" request: the element key plus the container to build."""

    item_key: Any
    build: Callable[[Iterable[Any]], Any]


def collection_request(dependency: Any) -> CollectionRequest | None:
    """Return the collection request for ``All[T]``, ``list[T]`` and friends, or ``None``."""
    if is_all_annotation(dependency):
        return CollectionRequest(item_key=strip_all_annotation(dependency), build=tuple)

    origin = get_origin(dependency)
    args = get_args(dependency)
    if origin is list and len(args) == 1:
        return CollectionRequest(item_key=args[0], build=list)
    if origin is tuple and len(args) == _HOMOGENEOUS_TUPLE_ARGS and args[1] is Ellipsis:
        return CollectionRequest(item_key=args[0], build=tuple)
    if origin in _SEQUENCE_ORIGINS and len(args) == 1:
        return CollectionRequest(item_key=args[0], build=tuple)
    return None


__all__ = [
    "CollectionRequest",
    "collection_request",
    "is_abstract_class",
    "is_collection_class",
    "is_library_class",
    "is_protocol_class",
    "is_runtime_class",
    "runtime_class_of",
]
