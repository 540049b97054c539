"""
Gateway redirect policy: the canonical destination for a request given the
caller's role and authentication state. Pure; no I/O.
"""

from gatekeeper.core.gateway.routes import ROUTE_TABLE, RouteTable

LOGIN_PATH = "/login"
LANDING_PATH = "/"
NOT_FOUND_PATH = "/not-found"
NO_ACCESS_PATH = "/no-access"


def get_redirect_path(
    path: str,
    role: str | None,
    authenticated: bool,
    routes: RouteTable = ROUTE_TABLE,
) -> str:
    """
    Return where the request should end up; ``path`` itself means no redirect.

    Rules are evaluated in order:
    1. Authenticated visit to /login -> role dashboard, or / for unmapped roles.
    2. / is always served as-is (signed-in users may see the landing page).
    3. Unknown path -> /not-found.
    4. Anything else stays put.
    """
    if path == LOGIN_PATH and authenticated:
        return routes.dashboard_for(role) or LANDING_PATH

    if path == LANDING_PATH:
        return LANDING_PATH

    if not routes.is_known(path):
        return NOT_FOUND_PATH

    return path
