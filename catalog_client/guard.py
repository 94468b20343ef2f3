import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from catalog_client.models import Role
from catalog_client.session import Session

logger = logging.getLogger(__name__)


class Route(Enum):
    HOME = "/"
    LOGIN = "/login"
    SIGNUP = "/signup"
    BOOKS = "/books"
    BOOK_DETAIL = "/books/{id}"
    PROFILE = "/profile"
    ADMIN = "/admin"


class Access(Enum):
    PUBLIC = "public"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


ROUTE_ACCESS = {
    Route.HOME: Access.PUBLIC,
    Route.LOGIN: Access.PUBLIC,
    Route.SIGNUP: Access.PUBLIC,
    Route.BOOKS: Access.PUBLIC,
    Route.BOOK_DETAIL: Access.PUBLIC,
    Route.PROFILE: Access.AUTHENTICATED,
    Route.ADMIN: Access.ADMIN,
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    redirect: Optional[Route] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def redirect_to(cls, route: Route) -> "Decision":
        return cls(allowed=False, redirect=route)


class Guard:
    """Decides which views the current session may reach.

    Decisions are computed from the session on every call; nothing is
    cached, so a logout is visible to the very next check.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def requires_authentication(self) -> Decision:
        if self.session.authenticated:
            return Decision.allow()
        return Decision.redirect_to(Route.LOGIN)

    def requires_role(self, role: Role) -> Decision:
        # Lack of permission sends the user home, not back to the login form
        if not self.session.authenticated:
            return Decision.redirect_to(Route.HOME)
        user = self.session.user
        if user is None:
            return Decision.redirect_to(Route.HOME)
        if self._has_role(user.role, role):
            return Decision.allow()
        return Decision.redirect_to(Route.HOME)

    @staticmethod
    def _has_role(actual: Optional[Role], required: Role) -> bool:
        match required:
            case Role.ADMIN:
                return actual is Role.ADMIN
            case Role.MEMBER:
                return actual is Role.MEMBER or actual is Role.ADMIN
        return False

    def check(self, route: Route) -> Decision:
        access = ROUTE_ACCESS[route]
        match access:
            case Access.PUBLIC:
                return Decision.allow()
            case Access.AUTHENTICATED:
                return self.requires_authentication()
            case Access.ADMIN:
                return self.requires_role(Role.ADMIN)
        raise ValueError(f"Unhandled access level {access}")

    def watch(self, route: Route, on_revoked: Callable[[Decision], None]) -> Callable[[], None]:
        """Re-check ``route`` on every session change.

        ``on_revoked`` fires once each time the route goes from reachable to
        unreachable. Returns the unsubscribe hook.
        """
        reachable = self.check(route).allowed

        def _reevaluate(_session: Session) -> None:
            nonlocal reachable
            decision = self.check(route)
            if reachable and not decision.allowed:
                logger.info(f"Access to {route.value} revoked")
                on_revoked(decision)
            reachable = decision.allowed

        return self.session.subscribe(_reevaluate)
