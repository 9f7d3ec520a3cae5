"""Reversible method interception.

Wraps a method on one object so every call runs the original first and
then notifies an observer with the call arguments. install() and
uninstall() are symmetric and idempotent.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


class MethodInterceptor:
    """Observe calls to ``owner.name`` without changing their behavior.

    Args:
        owner: Object whose attribute is wrapped (an instance, not a class).
        name: Method name.
        after: Called with the same arguments once the original returns.
    """

    def __init__(self, owner: Any, name: str, after: Callable[..., Any]) -> None:
        self.owner = owner
        self.name = name
        self._after = after
        self._wrapper: Callable[..., Any] | None = None
        self._own_value: Any = _MISSING
        self._active = False

    @property
    def installed(self) -> bool:
        return self._wrapper is not None

    def install(self) -> None:
        if self._wrapper is not None:
            return
        original = getattr(self.owner, self.name)
        self._own_value = vars(self.owner).get(self.name, _MISSING)
        self._active = True

        @functools.wraps(original)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            result = original(*args, **kwargs)
            if self._active:
                try:
                    self._after(*args, **kwargs)
                except Exception:
                    logger.exception("Observer for %s raised", self.name)
            return result

        setattr(self.owner, self.name, wrapper)
        self._wrapper = wrapper

    def uninstall(self) -> None:
        if self._wrapper is None:
            return
        self._active = False
        current = vars(self.owner).get(self.name, _MISSING)
        if current is self._wrapper:
            if self._own_value is _MISSING:
                delattr(self.owner, self.name)
            else:
                setattr(self.owner, self.name, self._own_value)
        else:
            # Wrapped again on top of ours; ours stays as a pass-through.
            logger.debug("%s was re-wrapped; leaving the outer wrapper in place", self.name)
        self._wrapper = None
        self._own_value = _MISSING
