from __future__ import annotations

import inspect
from typing import Any

from subwire._internal.type_checks import is_protocol_class
from subwire.exceptions import SubwireInvalidRegistrationError


class DependencyRegistrationValidator:
    """Validates registration arguments before provider specs are created."""

    def validate_provides(self, provides: Any, *, method_name: str) -> None:
        """Reject a ``None`` dependency key."""
        if provides is None:
            msg = f"{method_name}() parameter 'provides' must not be None."
            raise SubwireInvalidRegistrationError(msg)

    def validate_concrete_type(self, concrete_type: object) -> None:
        """Validate that a concrete provider is instantiable."""
        if not inspect.isclass(concrete_type):
            msg = f"Concrete provider must be a class, got {concrete_type!r}."
            raise SubwireInvalidRegistrationError(msg)

        if inspect.isabstract(concrete_type) or is_protocol_class(concrete_type):
            msg = f"Concrete provider '{concrete_type.__qualname__}' cannot be an abstract class."
            raise SubwireInvalidRegistrationError(msg)

    def validate_callable(self, provider: object, *, method_name: str) -> None:
        """Validate that a factory or generator provider is callable."""
        if not callable(provider):
            msg = f"{method_name}() expects a callable provider, got {provider!r}."
            raise SubwireInvalidRegistrationError(msg)

    def validate_generator(self, generator: object) -> None:
        """Validate that a generator provider is a generator function."""
        self.validate_callable(generator, method_name="add_generator")
        if not inspect.isgeneratorfunction(inspect.unwrap(generator)):  # type: ignore[arg-type]
            msg = f"add_generator() expects a generator function, got {generator!r}."
            raise SubwireInvalidRegistrationError(msg)


def is_infer(value: Any) -> bool:
    """Return true for the ``"infer"`` placeholder accepted by ``provides`` arguments."""
    return isinstance(value, str) and value == "infer"
