"""
Per-call observer hooks for account operations.

Each hook point holds an ordered list of callables. Callbacks run
synchronously, in registration order, right after the mutation they
observe and before the operation returns. A callback that raises aborts
the operation; mutations already made are not rolled back.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Hook = Callable[[Any], Any]


@dataclass
class AuthHooks:
    """Observer lists keyed by hook point."""

    post_generate_code: List[Hook] = field(default_factory=list)
    post_send_code: List[Hook] = field(default_factory=list)
    post_consume_code: List[Hook] = field(default_factory=list)
    post_issue_session: List[Hook] = field(default_factory=list)
    post_insert_user: List[Hook] = field(default_factory=list)
    post_insert_login_email: List[Hook] = field(default_factory=list)
    post_mark_email_verified: List[Hook] = field(default_factory=list)

    def subscribe(self, point: str, callback: Hook) -> "AuthHooks":
        """
        Add a callback to a hook point. Returns self for chaining.

        Raises:
            ValueError: If the hook point does not exist.
        """
        if point not in self.__dataclass_fields__:
            raise ValueError(f"Unknown hook point: {point}")
        getattr(self, point).append(callback)
        return self


def run_hooks(hooks: AuthHooks | None, point: str, result: Any) -> None:
    """Invoke every callback registered at ``point`` with ``result``."""
    if hooks is None:
        return
    for callback in getattr(hooks, point):
        logger.debug(f"Running {point} hook {getattr(callback, '__name__', callback)!r}")
        callback(result)
