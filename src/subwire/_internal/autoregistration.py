from __future__ import annotations

import datetime
import decimal
import enum
import pathlib
import uuid
from dataclasses import dataclass
from typing import Any, TypeGuard

from subwire._internal.type_checks import is_abstract_class, is_runtime_class

# Value-like types that should be supplied by the test, never constructed implicitly.
VALUE_TYPES: tuple[type[Any], ...] = (
    datetime.date,
    datetime.time,
    datetime.timedelta,
    decimal.Decimal,
    enum.Enum,
    pathlib.PurePath,
    uuid.UUID,
)


@dataclass(frozen=True, slots=True)
class ConcreteTypeAutoregistrationPolicy:
    """Decides which unregistered classes may be built through their constructor.

    Builtins, metaclasses, abstract classes and protocols are refused, and so
    is anything deriving from ``ignored_base_types``.
    """

    ignored_base_types: tuple[type[Any], ...] = VALUE_TYPES

    def is_eligible_concrete(self, candidate: object) -> TypeGuard[type[Any]]:
        if not is_runtime_class(candidate) or candidate.__module__ == "builtins":
            return False
        if is_abstract_class(candidate) or issubclass(candidate, type):
            return False
        return not issubclass(candidate, self.ignored_base_types)
