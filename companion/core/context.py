"""
Request context - the caller identity passed into every core operation.

Authentication happens upstream; whatever resolves the user hands the
engine a RequestContext instead of the engine reaching for global state.
"""
from dataclasses import dataclass
from typing import Optional

from companion.core.exceptions import Unauthenticated


@dataclass(frozen=True)
class RequestContext:
    """
    Identity of the caller for one operation.

    Attributes:
        user_id: Trusted user identifier, or None for anonymous callers
        request_id: Optional correlation id used in log lines
    """
    user_id: Optional[str]
    request_id: Optional[str] = None

    def require_user(self) -> str:
        """Return the user id or raise Unauthenticated."""
        if not self.user_id:
            raise Unauthenticated()
        return self.user_id
