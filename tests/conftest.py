"""Shared pytest fixtures for subwire tests."""

from collections.abc import Iterator

import pytest

from subwire.auto_substitute import AutoSubstitute
from subwire.container import Container
from subwire.substitutes import MockSubstituteFactory


@pytest.fixture()
def container() -> Container:
    """Empty container without registration sources."""
    return Container()


@pytest.fixture()
def auto(container: Container) -> Iterator[AutoSubstitute]:
    """AutoSubstitute built on ``container`` and disposed after the test."""
    with AutoSubstitute(container) as auto_substitute:
        yield auto_substitute


@pytest.fixture()
def substitute_factory() -> MockSubstituteFactory:
    """Standalone substitute factory."""
    return MockSubstituteFactory()
