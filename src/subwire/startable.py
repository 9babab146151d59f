from __future__ import annotations

from abc import ABC, abstractmethod


class Startable(ABC):
    """Mark a component that takes part in container startup.

    Every explicit registration whose key subclasses ``Startable`` is resolved
    and started once when its container is compiled. Substitutes are never
    generated for ``Startable`` types, so a fake object can never run startup
    hooks in place of the real component.

    Examples:
        .. code-block:: python

            class CacheWarmer(Startable):
                def start(self) -> None:
                    self.cache.load()


            container.add_concrete(CacheWarmer)
            container.compile()  # CacheWarmer.start() runs here

    """

    @abstractmethod
    def start(self) -> None:
        """Run startup work."""
