"""Handler registry: maps task type names to the workflows and activities a worker hosts.

The runner builds a Temporal Worker from whatever is registered here. The key
is the name the SDK dispatches on, i.e. the name given to `@workflow.defn` or
`@activity.defn`, so a registration under any other name is rejected rather
than silently hosting the handler under a different type. Names are unique
across kinds, and a handler can only be registered once. A second
registration is a startup error and leaves the first one in place. Once the
worker is built the registry is frozen, so nothing can change what the
running worker claims to serve.
"""

from dataclasses import dataclass
from typing import Any, Literal, get_args

from rotation_greeting.workflows import GreetSomeone
from rotation_shared.errors import RegistrationError
from temporalio import activity, workflow

HandlerKind = Literal["workflow", "activity"]


@dataclass(frozen=True)
class HandlerEntry:
    """One registered handler."""

    type_name: str
    handler: Any
    kind: HandlerKind = "workflow"


def defined_name(handler: Any, kind: HandlerKind) -> str | None:
    """The type name the SDK will dispatch `handler` on.

    Raises:
        RegistrationError: The handler is not decorated for `kind`.
    """
    if kind == "workflow":
        defn = workflow._Definition.from_class(handler) if isinstance(handler, type) else None
        if defn is None:
            raise RegistrationError(f"{handler!r} is not a @workflow.defn class")
        return defn.name

    defn = activity._Definition.from_callable(handler) if callable(handler) else None
    if defn is None:
        raise RegistrationError(f"{handler!r} is not an @activity.defn callable")
    return defn.name


class HandlerRegistry:
    """Startup-time lookup table from type name to handler."""

    def __init__(self) -> None:
        self._entries: dict[str, HandlerEntry] = {}
        self._frozen = False

    def register(self, type_name: str, handler: Any, kind: HandlerKind = "workflow") -> HandlerEntry:
        """Add a handler under the type name it is defined with.

        Raises:
            RegistrationError: The name is empty or already taken, the kind is
                unknown, the handler is not defined under `type_name`, the
                handler is already registered, or the registry is frozen.
        """
        if self._frozen:
            raise RegistrationError(f"Registry is frozen; cannot register '{type_name}'")
        if not type_name:
            raise RegistrationError("Handler type name must not be empty")
        if kind not in get_args(HandlerKind):
            raise RegistrationError(
                f"Unknown handler kind '{kind}' for '{type_name}' "
                f"(expected one of {', '.join(get_args(HandlerKind))})"
            )

        name = defined_name(handler, kind)
        if name != type_name:
            raise RegistrationError(
                f"Cannot register '{type_name}': {handler!r} is defined as {kind} '{name}'"
            )
        if type_name in self._entries:
            existing = self._entries[type_name]
            raise RegistrationError(
                f"'{type_name}' is already registered as a {existing.kind} ({existing.handler!r})"
            )
        for existing in self._entries.values():
            if existing.handler is handler:
                raise RegistrationError(
                    f"{handler!r} is already registered as '{existing.type_name}'"
                )

        entry = HandlerEntry(type_name=type_name, handler=handler, kind=kind)
        self._entries[type_name] = entry
        return entry

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, type_name: str) -> HandlerEntry | None:
        return self._entries.get(type_name)

    def workflows(self) -> list[Any]:
        return [e.handler for e in self._entries.values() if e.kind == "workflow"]

    def activities(self) -> list[Any]:
        return [e.handler for e in self._entries.values() if e.kind == "activity"]

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def default_registry() -> HandlerRegistry:
    """The handlers this worker hosts."""
    registry = HandlerRegistry()
    registry.register("GreetSomeone", GreetSomeone)
    return registry
