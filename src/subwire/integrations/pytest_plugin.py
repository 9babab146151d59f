from __future__ import annotations

from collections.abc import Iterator

import pytest

from subwire.auto_substitute import AutoSubstitute
from subwire.container import Container


@pytest.fixture()
def subwire_container() -> Container:
    """Create the per-test container that ``auto_substitute`` builds on.

    Override this fixture in a test suite to add explicit registrations; they
    take precedence over automatic concrete-type resolution and substitutes.

    Returns:
        A new ``Container`` instance.

    """
    return Container()


@pytest.fixture()
def auto_substitute(subwire_container: Container) -> Iterator[AutoSubstitute]:
    """Provide an ``AutoSubstitute`` that is disposed when the test finishes.

    Disposal runs on every exit path, including failing tests, so override
    scopes and generator cleanups are always released in reverse order.

    Yields:
        An ``AutoSubstitute`` wrapping ``subwire_container``.

    """
    with AutoSubstitute(subwire_container) as auto:
        yield auto
