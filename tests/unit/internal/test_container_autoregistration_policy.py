from __future__ import annotations

import datetime
import decimal
import enum
import pathlib
import uuid
from abc import ABC, abstractmethod
from typing import Any, Protocol

import pytest

from subwire._internal.autoregistration import ConcreteTypeAutoregistrationPolicy


class Concrete:
    pass


class Abstract(ABC):
    @abstractmethod
    def run(self) -> None: ...


class Interface(Protocol):
    def run(self) -> None: ...


class Status(enum.Enum):
    ACTIVE = 1


class Meta(type):
    pass


class Money(decimal.Decimal):
    pass


def test_concrete_classes_are_eligible() -> None:
    assert ConcreteTypeAutoregistrationPolicy().is_eligible_concrete(Concrete) is True


@pytest.mark.parametrize(
    "candidate",
    [
        Abstract,
        Interface,
        Status,
        Meta,
        Money,
        int,
        object,
        pathlib.PurePosixPath,
        datetime.date,
        datetime.timedelta,
        uuid.UUID,
        list[Concrete],
        None,
    ],
)
def test_ineligible_candidates(candidate: Any) -> None:
    assert ConcreteTypeAutoregistrationPolicy().is_eligible_concrete(candidate) is False


def test_ignored_base_types_can_be_customized() -> None:
    policy = ConcreteTypeAutoregistrationPolicy(ignored_base_types=(Concrete,))

    assert policy.is_eligible_concrete(Concrete) is False
    assert policy.is_eligible_concrete(uuid.UUID) is True
