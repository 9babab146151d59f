from typing import TYPE_CHECKING, Annotated, Any, NamedTuple, TypeVar, get_args, get_origin

T = TypeVar("T")


class Component(NamedTuple):
    """Name one of several registrations that share a service type.

    ``Annotated[Service, Component("name")]`` is a key of its own, separate from
    plain ``Service``. Named keys are only ever satisfied by explicit
    registrations; no substitute is generated for them.

    Examples:
        .. code-block:: python

            class Cache: ...


            LocalCache = Annotated[Cache, Component("local")]
            SharedCache = Annotated[Cache, Component("shared")]

            container.add_concrete(MemoryCache, provides=LocalCache)
            container.add_concrete(RedisCache, provides=SharedCache)

    """

    value: Any


class AllMarker(NamedTuple):
    """Metadata carried by ``All[...]`` keys; holds the service type being collected."""

    dependency_key: Any


if TYPE_CHECKING:
    All = tuple[T, ...]
    """Request every registration of a service type as a tuple."""

else:

    class All:
        """Request every registration of a service type as a tuple.

        ``All[Service]`` expands to ``Annotated[Service, AllMarker(Service)]``. The
        resolved tuple holds the plain ``Service`` registration followed by every
        ``Annotated[Service, Component(...)]`` registration, in registration
        order. Nothing is substituted, so an unregistered service gives ``()``.
        """

        def __class_getitem__(cls, item: Any) -> Any:
            service = get_args(item)[0] if get_origin(item) is Annotated else item
            return build_annotated_key((service, AllMarker(dependency_key=service)))


def _annotated_parts(annotation: Any) -> tuple[Any, tuple[Any, ...]] | None:
    if get_origin(annotation) is not Annotated:
        return None
    base, *metadata = get_args(annotation)
    return base, tuple(metadata)


def _all_marker_of(annotation: Any) -> AllMarker | None:
    parts = _annotated_parts(annotation)
    if parts is None:
        return None
    for item in parts[1]:
        if isinstance(item, AllMarker):
            return item
    return None


def is_all_annotation(annotation: Any) -> bool:
    """Tell whether ``annotation`` was produced by ``All[...]``."""
    return _all_marker_of(annotation) is not None


def strip_all_annotation(annotation: Any) -> Any:
    """Unwrap ``All[Service]`` to ``Service``; other annotations pass through."""
    marker = _all_marker_of(annotation)
    return annotation if marker is None else marker.dependency_key


def component_base_key(annotation: Any) -> Any | None:
    """Return ``Service`` for a ``Component``-named key, ``None`` for anything else."""
    parts = _annotated_parts(annotation)
    if parts is None:
        return None
    base, metadata = parts
    if any(isinstance(item, Component) for item in metadata):
        return base
    return None


def build_annotated_key(params: tuple[object, ...]) -> Any:
    # Annotated exposes __class_getitem__ on 3.10 and __getitem__ on newer releases.
    subscript = getattr(Annotated, "__class_getitem__", None)
    if subscript is None:
        subscript = Annotated.__getitem__  # type: ignore[attr-defined]
    return subscript(params)
