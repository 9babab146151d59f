from __future__ import annotations

import pytest
from pydantic_settings import BaseSettings

from subwire.auto_substitute import AutoSubstitute
from subwire.container import Container
from subwire.providers import Lifetime
from subwire.sources import AnyConcreteTypeSource


class AppSettings(BaseSettings):
    service_name: str = "checkout"
    retries: int = 3


class Client:
    def __init__(self, settings: AppSettings) -> None:
        self.settings = settings


def test_settings_are_built_from_the_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVICE_NAME", "billing")

    with AutoSubstitute() as auto_substitute:
        settings = auto_substitute.resolve(AppSettings)

    assert settings.service_name == "billing"
    assert settings.retries == 3


def test_settings_are_shared_across_scopes() -> None:
    with AutoSubstitute() as auto_substitute:
        first = auto_substitute.resolve(Client).settings
        auto_substitute.provide_instance(object(), provides=str)

        assert auto_substitute.resolve(Client).settings is first


def test_concrete_source_registers_settings_as_singleton_factories() -> None:
    source = AnyConcreteTypeSource()
    container = Container()

    (spec,) = source.registrations_for(AppSettings, container.registrations_for)

    assert spec.factory is AppSettings
    assert spec.lifetime is Lifetime.SINGLETON
    assert spec.dependencies == []
