"""
Event dispatch for Tenancy.

Listeners run synchronously on the caller's task. In isolated mode a failing
listener is logged and skipped; in strict mode the failure propagates and
aborts the operation that raised the event.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .models import CallbackContext, DispatchMode, Event

logger = logging.getLogger(__name__)

Listener = Callable[..., Union[None, Awaitable[None]]]


def _accepts_context(listener: Listener) -> bool:
    """Decide once whether the listener takes the context argument."""
    try:
        signature = inspect.signature(listener)
    except (TypeError, ValueError):
        return True

    for param in signature.parameters.values():
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False


class _Registration:
    def __init__(self, listener: Listener) -> None:
        self.listener = listener
        self.takes_context = _accepts_context(listener)

    async def __call__(self, context: CallbackContext) -> None:
        result = self.listener(context) if self.takes_context else self.listener()
        if inspect.isawaitable(result):
            await result


class EventDispatcher:
    """
    Registry of event listeners with isolated or strict dispatch.

    Example:
        ```python
        async def on_joined(ctx):
            await analytics.track(ctx.user.id, "joined", org=ctx.organization.name)

        tenancy.events.on(Event.MEMBER_JOINED, on_joined)

        # Seat limit veto: strict dispatch lets this abort the invite
        def enforce_seats(ctx):
            if seats_used(ctx.organization) >= SEAT_LIMIT:
                raise SeatLimitReached()

        tenancy.events.on(Event.MEMBER_INVITED, enforce_seats)
        ```
    """

    def __init__(self) -> None:
        self._listeners: Dict[Event, List[_Registration]] = {}

    def on(self, event: Union[Event, str], listener: Listener) -> Listener:
        """
        Register a listener for an event.

        Listeners may be sync or async and take either no arguments or the
        CallbackContext. Returns the listener so this can be used as a
        decorator factory target.
        """
        if not callable(listener):
            raise TypeError("listener must be callable")
        self._listeners.setdefault(Event(event), []).append(_Registration(listener))
        return listener

    def listener(self, event: Union[Event, str]) -> Callable[[Listener], Listener]:
        """Decorator form of ``on``."""

        def decorator(fn: Listener) -> Listener:
            return self.on(event, fn)

        return decorator

    def off(self, event: Union[Event, str], listener: Listener) -> None:
        """Unregister a listener (no-op if it is not registered)."""
        registrations = self._listeners.get(Event(event), [])
        self._listeners[Event(event)] = [r for r in registrations if r.listener is not listener]

    def clear(self, event: Optional[Union[Event, str]] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(Event(event), None)

    def listeners_for(self, event: Union[Event, str]) -> List[Listener]:
        return [r.listener for r in self._listeners.get(Event(event), [])]

    async def dispatch(
        self,
        event: Union[Event, str],
        mode: DispatchMode = DispatchMode.ISOLATED,
        **fields: Any,
    ) -> Optional[CallbackContext]:
        """
        Dispatch an event to its listeners.

        Args:
            event: Event being raised
            mode: ISOLATED logs listener errors, STRICT re-raises them
            **fields: CallbackContext fields

        Returns:
            The context passed to listeners, or None if nobody listens

        Raises:
            Exception: Whatever a listener raised, in STRICT mode only
        """
        event = Event(event)
        registrations = list(self._listeners.get(event, []))
        if not registrations:
            return None

        context = CallbackContext(event=event, **fields)
        for registration in registrations:
            if mode == DispatchMode.STRICT:
                await registration(context)
                continue

            try:
                await registration(context)
            except Exception as e:
                logger.error(
                    "Listener error for %s: %s: %s", event.value, type(e).__name__, e
                )
                logger.debug("Listener traceback", exc_info=True)

        return context
