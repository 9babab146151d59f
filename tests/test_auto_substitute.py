from __future__ import annotations

import gc
import itertools
from abc import ABC, abstractmethod
from collections.abc import Callable, Generator, Mapping
from typing import Generic, Protocol, TypeVar

import pytest

from subwire.auto_substitute import AutoSubstitute
from subwire.container import Container
from subwire.exceptions import (
    SubwireDependencyNotRegisteredError,
    SubwireInvalidRegistrationError,
    SubwireScopeDisposedError,
)
from subwire.providers import Lifetime
from subwire.startable import Startable
from subwire.substitutes import MockSubstituteFactory

T = TypeVar("T")


class IBar(Protocol):
    @property
    def gone(self) -> bool: ...

    def go(self) -> None: ...

    def spawn(self) -> IBar: ...

    def fuzz(self) -> str: ...


class IBaz(ABC):
    @abstractmethod
    def go(self) -> None: ...


class Bar(ABC):
    def __init__(self) -> None:
        self._gone = False

    @property
    def gone(self) -> bool:
        return self._gone

    def go(self) -> None:
        self._gone = True

    def spawn(self) -> IBar:
        raise NotImplementedError

    def fuzz(self) -> str:
        return "Buzz"

    @abstractmethod
    def go_abstractly(self) -> None: ...


class Baz(IBaz):
    def __init__(self) -> None:
        self.gone = False

    def go(self) -> None:
        self.gone = True


class OtherBaz(IBaz):
    def go(self) -> None:
        pass


class Foo:
    def __init__(self, bar: IBar, baz: IBaz) -> None:
        self.bar = bar
        self.baz = baz

    def go(self) -> None:
        self.bar.go()
        self.baz.go()

    def fuzz(self) -> str:
        return self.bar.fuzz()


class IGreeter(ABC):
    @abstractmethod
    def greet(self) -> str: ...


class Greeter(IGreeter):
    def __init__(self, greeting: str) -> None:
        self.greeting = greeting

    def greet(self) -> str:
        return self.greeting


class Reporter:
    def __init__(self, baz: IBaz) -> None:
        self.baz = baz

    def report(self) -> str:
        self.baz.go()
        return "sent"


class NeedsText:
    def __init__(self, text: str) -> None:
        self.text = text


class User:
    pass


class Repository(ABC, Generic[T]):
    @abstractmethod
    def get(self, key: int) -> T: ...


class Resource:
    def __init__(self, number: int) -> None:
        self.number = number


class Warmer(Startable):
    def __init__(self) -> None:
        self.started = False

    def start(self) -> None:
        self.started = True


class UsesCallback:
    def __init__(self, callback: Callable[[int], str]) -> None:
        self.callback = callback

    def describe(self, number: int) -> str:
        return self.callback(number)


class UsesSettings:
    def __init__(self, settings: Mapping[str, str]) -> None:
        self.settings = settings


class TestDefaultResolution:
    def test_abstract_types_are_resolved_to_the_same_shared_instance(
        self,
        auto: AutoSubstitute,
    ) -> None:
        assert auto.resolve(IBar) is auto.resolve(IBar)
        assert auto.resolve(IBaz) is auto.resolve(IBaz)

    def test_concrete_types_are_resolved_to_the_same_shared_instance(
        self,
        auto: AutoSubstitute,
    ) -> None:
        baz = auto.resolve(Baz)

        assert isinstance(baz, Baz)
        assert baz is auto.resolve(Baz)

    def test_abstract_callable_dependencies_are_substituted(self, auto: AutoSubstitute) -> None:
        user = auto.resolve(UsesCallback)
        user.callback.return_value = "three"

        assert user.describe(3) == "three"
        user.callback.assert_called_once_with(3)
        assert user.callback is auto.resolve(Callable[[int], str])

    def test_abstract_mapping_dependencies_are_substituted(self, auto: AutoSubstitute) -> None:
        user = auto.resolve(UsesSettings)
        user.settings.get.return_value = "eu-west-1"

        assert isinstance(user.settings, Mapping)
        assert user.settings.get("region") == "eu-west-1"
        assert user.settings is auto.resolve(Mapping[str, str])

    def test_substitutes_are_not_strict(self, auto: AutoSubstitute) -> None:
        foo = auto.resolve(Foo)

        foo.go()

    def test_substitutes_do_not_call_base_methods(self, auto: AutoSubstitute) -> None:
        bar = auto.resolve(Bar)

        bar.go()

        assert bar.gone is False

    def test_substitutes_respond_to_calls(self, auto: AutoSubstitute) -> None:
        bar = auto.resolve(IBar)

        assert bar.spawn() is not None

    def test_substitutes_return_defaults_for_primitive_return_types(
        self,
        auto: AutoSubstitute,
    ) -> None:
        bar = auto.resolve(IBar)

        assert bar.fuzz() == ""
        assert bar.go() is None
        assert bar.gone is False

    def test_concrete_dependencies_receive_the_shared_substitutes(
        self,
        auto: AutoSubstitute,
    ) -> None:
        foo = auto.resolve(Foo)

        assert foo.bar is auto.resolve(IBar)
        assert foo.baz is auto.resolve(IBaz)

    def test_calls_on_substitutes_are_observable(self, auto: AutoSubstitute) -> None:
        foo = auto.resolve(Foo)

        foo.go()

        auto.resolve(IBar).go.assert_called_once_with()
        auto.resolve(IBaz).go.assert_called_once_with()

    def test_parameterized_abstract_types_are_substituted(self, auto: AutoSubstitute) -> None:
        repository = auto.resolve(Repository[User])

        assert isinstance(repository, Repository)
        assert repository is auto.resolve(Repository[User])

    def test_resolve_passes_constructor_parameters(self, auto: AutoSubstitute) -> None:
        greeter = auto.resolve(Greeter, greeting="hello")

        assert greeter.greet() == "hello"

    def test_unresolvable_concrete_dependency_raises(self, auto: AutoSubstitute) -> None:
        with pytest.raises(SubwireDependencyNotRegisteredError) as exc_info:
            auto.resolve(NeedsText)

        assert exc_info.value.dependency is str
        assert exc_info.value.chain == (NeedsText, str)

    def test_startable_types_are_never_substituted(self, auto: AutoSubstitute) -> None:
        with pytest.raises(SubwireDependencyNotRegisteredError):
            auto.resolve(Startable)

    def test_resolve_rejects_none(self, auto: AutoSubstitute) -> None:
        with pytest.raises(SubwireInvalidRegistrationError):
            auto.resolve(None)


class TestExplicitRegistrations:
    def test_container_registrations_take_precedence_over_substitutes(
        self,
        container: Container,
    ) -> None:
        container.add_concrete(Baz, provides=IBaz)

        with AutoSubstitute(container) as auto_substitute:
            assert isinstance(auto_substitute.resolve(IBaz), Baz)
            assert isinstance(auto_substitute.resolve(Foo).baz, Baz)

    def test_registered_startable_components_are_started(self, container: Container) -> None:
        container.add_concrete(Warmer, lifetime=Lifetime.SINGLETON)

        with AutoSubstitute(container) as auto_substitute:
            assert auto_substitute.resolve(Warmer).started is True

    def test_container_property_returns_the_wrapped_container(self, container: Container) -> None:
        with AutoSubstitute(container) as auto_substitute:
            assert auto_substitute.container is container
            assert isinstance(auto_substitute.substitute_factory, MockSubstituteFactory)

    def test_creates_a_container_when_none_is_given(self) -> None:
        with AutoSubstitute() as auto_substitute:
            assert isinstance(auto_substitute.container, Container)
            assert auto_substitute.resolve(IBar) is not None


class TestProvide:
    def test_provides_implementations(self, auto: AutoSubstitute) -> None:
        baz = auto.provide(IBaz, Baz)

        assert isinstance(baz, Baz)
        assert auto.resolve(IBaz) is baz
        assert auto.resolve(Foo).baz is baz

    def test_provide_passes_constructor_parameters(self, auto: AutoSubstitute) -> None:
        greeter = auto.provide(IGreeter, Greeter, greeting="hi")

        assert greeter.greet() == "hi"

    def test_provides_instances(
        self,
        auto: AutoSubstitute,
        substitute_factory: MockSubstituteFactory,
    ) -> None:
        bar = substitute_factory.create(IBar)
        auto.provide_instance(bar, provides=IBar)

        foo = auto.resolve(Foo)
        foo.go()

        bar.go.assert_called_once_with()

    def test_provide_instance_infers_the_key_from_the_instance_type(
        self,
        auto: AutoSubstitute,
    ) -> None:
        baz = Baz()

        assert auto.provide_instance(baz) is baz
        assert auto.resolve(Baz) is baz

    def test_provides_parts_of_instances(
        self,
        auto: AutoSubstitute,
        substitute_factory: MockSubstituteFactory,
    ) -> None:
        bar = substitute_factory.create_partial(Bar)
        bar.fuzz.return_value = "Fuzz"
        auto.provide_instance(bar, provides=IBar)

        foo = auto.resolve(Foo)

        assert foo.fuzz() == "Fuzz"

    def test_provides_parts_of_implementation_types(self, auto: AutoSubstitute) -> None:
        bar = auto.provide_substitute_of(IBar, Bar)
        bar.fuzz.return_value = "Fuzz"

        foo = auto.resolve(Foo)

        assert foo.fuzz() == "Fuzz"
        assert foo.bar is bar

    def test_partial_substitute_runs_real_code_for_unconfigured_members(
        self,
        auto: AutoSubstitute,
    ) -> None:
        bar = auto.provide_substitute_of(IBar, Bar)

        assert bar.fuzz() == "Buzz"
        bar.go()

        assert bar.gone is True
        bar.go.assert_called_once_with()
        assert bar.go_abstractly() is None

    def test_partial_substitute_receives_resolved_constructor_dependencies(
        self,
        auto: AutoSubstitute,
    ) -> None:
        reporter = auto.provide_substitute_of(Reporter, Reporter)

        assert reporter.report() == "sent"
        assert reporter.baz is auto.resolve(IBaz)
        reporter.baz.go.assert_called_once_with()

    def test_partial_substitute_passes_constructor_parameters(
        self,
        auto: AutoSubstitute,
    ) -> None:
        greeter = auto.provide_substitute_of(IGreeter, Greeter, greeting="hey")

        assert greeter.greet() == "hey"
        greeter.greet.assert_called_once_with()

    def test_later_override_shadows_an_earlier_one(self, auto: AutoSubstitute) -> None:
        auto.provide(IBaz, Baz)
        replacement = auto.provide_instance(OtherBaz(), provides=IBaz)

        assert auto.resolve(IBaz) is replacement
        assert auto.resolve(Foo).baz is replacement

    def test_instances_resolved_before_an_override_keep_their_collaborators(
        self,
        auto: AutoSubstitute,
    ) -> None:
        first = auto.resolve(Foo)
        replacement = auto.provide_instance(Baz(), provides=IBaz)

        second = auto.resolve(Foo)

        assert second is not first
        assert first.baz is not replacement
        assert second.baz is replacement


class TestScopeStack:
    def test_current_scope_starts_directly_under_the_container(
        self,
        auto: AutoSubstitute,
    ) -> None:
        assert auto.scopes == ()
        assert auto.current_scope.parent is auto.container

    def test_each_override_pushes_one_child_of_the_current_scope(
        self,
        auto: AutoSubstitute,
    ) -> None:
        base_scope = auto.current_scope

        auto.provide(IBaz, Baz)
        auto.provide_instance(OtherBaz(), provides=IBaz)

        first, second = auto.scopes
        assert first.parent is base_scope
        assert second.parent is first
        assert auto.current_scope is second

    def test_invalid_overrides_do_not_push_a_scope(self, auto: AutoSubstitute) -> None:
        with pytest.raises(SubwireInvalidRegistrationError):
            auto.provide(None, Baz)
        with pytest.raises(SubwireInvalidRegistrationError):
            auto.provide(IBaz, IBaz)
        with pytest.raises(SubwireInvalidRegistrationError):
            auto.provide_instance(Baz(), provides=None)
        with pytest.raises(SubwireInvalidRegistrationError):
            auto.provide_substitute_of(IBar, "Bar")  # type: ignore[arg-type]
        with pytest.raises(SubwireInvalidRegistrationError):
            auto.provide_substitute_of(None, Bar)

        assert auto.scopes == ()


class TestDispose:
    def test_dispose_releases_override_scopes_before_the_base_scope(
        self,
        container: Container,
    ) -> None:
        released: list[int] = []
        numbers = itertools.count(1)

        def open_resource() -> Generator[Resource, None, None]:
            resource = Resource(next(numbers))
            yield resource
            released.append(resource.number)

        container.add_generator(open_resource)
        auto_substitute = AutoSubstitute(container)
        auto_substitute.resolve(Resource)
        auto_substitute.provide(IBaz, Baz)
        auto_substitute.resolve(Resource)
        auto_substitute.provide_instance(OtherBaz(), provides=IBaz)
        auto_substitute.resolve(Resource)

        auto_substitute.dispose()

        assert released == [3, 2, 1]

    def test_dispose_is_idempotent(self, container: Container) -> None:
        released: list[str] = []

        def open_resource() -> Generator[Resource, None, None]:
            yield Resource(1)
            released.append("resource")

        container.add_generator(open_resource)
        auto_substitute = AutoSubstitute(container)
        auto_substitute.resolve(Resource)

        auto_substitute.dispose()
        auto_substitute.dispose()

        assert released == ["resource"]
        assert auto_substitute.is_disposed is True

    def test_failing_cleanup_does_not_stop_the_remaining_releases(
        self,
        container: Container,
    ) -> None:
        def open_resource() -> Generator[Resource, None, None]:
            yield Resource(1)
            msg = "cleanup failed"
            raise RuntimeError(msg)

        container.add_generator(open_resource)
        auto_substitute = AutoSubstitute(container)
        auto_substitute.provide(IBaz, Baz)
        auto_substitute.provide_instance(OtherBaz(), provides=IBaz)
        auto_substitute.resolve(Resource)
        outer, inner = auto_substitute.scopes

        with pytest.raises(RuntimeError, match="cleanup failed"):
            auto_substitute.dispose()
        auto_substitute.dispose()

        assert inner.is_closed
        assert outer.is_closed
        assert auto_substitute.current_scope.is_closed
        assert container.is_closed
        assert auto_substitute.scopes == ()

    def test_dispose_closes_every_scope_and_the_container(self, container: Container) -> None:
        auto_substitute = AutoSubstitute(container)
        auto_substitute.provide(IBaz, Baz)
        scopes = auto_substitute.scopes

        auto_substitute.dispose()

        assert all(scope.is_closed for scope in scopes)
        assert auto_substitute.current_scope.is_closed
        assert container.is_closed

    def test_resolve_after_dispose_raises(self, container: Container) -> None:
        auto_substitute = AutoSubstitute(container)
        auto_substitute.dispose()

        with pytest.raises(SubwireScopeDisposedError):
            auto_substitute.resolve(Foo)

    def test_context_manager_disposes_on_error(self, container: Container) -> None:
        with pytest.raises(RuntimeError), AutoSubstitute(container) as auto_substitute:
            auto_substitute.provide(IBaz, Baz)
            raise RuntimeError

        assert auto_substitute.is_disposed is True
        assert container.is_closed

    def test_finalizer_releases_an_undisposed_instance(self, container: Container) -> None:
        auto_substitute = AutoSubstitute(container)
        auto_substitute.provide(IBaz, Baz)
        scopes = auto_substitute.scopes

        del auto_substitute
        gc.collect()

        assert all(scope.is_closed for scope in scopes)
        assert container.is_closed
