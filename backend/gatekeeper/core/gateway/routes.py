"""
Gateway route classifier: which paths are public, protected, or unknown,
and which roles may enter which protected subtrees.

Route templates use ``[name]`` for a dynamic segment (e.g. ``/news/[slug]``),
matching exactly one non-empty path segment. Templates are compiled once into
segment matchers; the tables below are static process-wide configuration.
"""

import functools
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum


class UserRole(str, Enum):
    """Platform roles, as stored in the identity provider's app_metadata.role."""

    ADMIN = "admin"
    HEAD_WRITER = "head_writer"
    LEAGUE_OPERATOR = "league_operator"
    WRITER = "writer"


class RouteScope(str, Enum):
    PUBLIC = "public"
    PROTECTED = "protected"


class RouteConfigError(ValueError):
    """Raised at startup when the route tables contradict each other."""


PUBLIC_ROUTES: tuple[str, ...] = (
    # Root and static pages
    "/",
    "/favicon.ico",
    "/sitemap.xml",
    "/robots.txt",
    # Legal
    "/privacy-policy",
    "/terms-of-service",
    # Authentication
    "/login",
    # Public content
    "/about-us",
    "/articles",
    "/contact",
    "/faq",
    "/news",
    "/news/[slug]",
    "/schedule",
    "/schools",
    "/schools/[slug]",
    "/volunteers",
    "/partners",
    # Error pages
    "/not-found",
    "/no-access",
)

PROTECTED_ROUTES: tuple[str, ...] = (
    # Admin
    "/admin",
    "/admin/accounts",
    "/admin/articles",
    "/admin/articles/[id]",
    "/admin/articles/new",
    "/admin/departments",
    "/admin/faq",
    "/admin/hero-section",
    "/admin/league-stage",
    "/admin/matches",
    "/admin/matches/[id]",
    "/admin/photo-gallery",
    "/admin/school-teams",
    "/admin/schools",
    "/admin/seasons",
    "/admin/sponsors",
    "/admin/sports",
    "/admin/timeline",
    "/admin/volunteers",
    # Head writer
    "/head-writer",
    "/head-writer/articles",
    "/head-writer/articles/[id]",
    "/head-writer/articles/new",
    "/head-writer/faq",
    "/head-writer/timeline",
    # League operator
    "/league-operator",
    "/league-operator/matches",
    "/league-operator/matches/[id]",
    # Writer
    "/writer",
    "/writer/articles",
    "/writer/articles/[id]",
    "/writer/articles/new",
    # Preview
    "/preview",
    "/preview/articles",
    "/preview/articles/[id]",
)

ROLE_DASHBOARDS: dict[str, str] = {
    UserRole.ADMIN.value: "/admin",
    UserRole.HEAD_WRITER.value: "/head-writer",
    UserRole.LEAGUE_OPERATOR.value: "/league-operator",
    UserRole.WRITER.value: "/writer",
}

# Coarse, subtree-level access: a prefix grants itself and everything below it.
ROLE_ROUTES: dict[str, tuple[str, ...]] = {
    UserRole.ADMIN.value: ("/admin", "/preview"),
    UserRole.HEAD_WRITER.value: ("/head-writer", "/preview"),
    UserRole.LEAGUE_OPERATOR.value: ("/league-operator",),
    UserRole.WRITER.value: ("/writer",),
}


def _split(path: str) -> tuple[str, ...] | None:
    """
    '/news/a' -> ('news', 'a'); '/' -> ('',). None for non-absolute paths.
    One trailing slash is dropped, so '/admin/' classifies like '/admin'.
    """
    if not path or not isinstance(path, str) or not path.startswith("/"):
        return None
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return tuple(path[1:].split("/"))


def _role_key(role: "UserRole | str") -> str:
    return role.value if isinstance(role, Enum) else str(role)


def _is_wildcard(segment: str) -> bool:
    return len(segment) > 2 and segment.startswith("[") and segment.endswith("]")


@dataclass(frozen=True, slots=True)
class RoutePattern:
    """A compiled route template. ``None`` in ``segments`` is a wildcard."""

    template: str
    scope: RouteScope
    segments: tuple[str | None, ...]

    def matches(self, path: str) -> bool:
        parts = _split(path)
        if parts is None or len(parts) != len(self.segments):
            return False
        for expected, actual in zip(self.segments, parts):
            if expected is None:
                if not actual:
                    return False
            elif expected != actual:
                return False
        return True

    def overlaps(self, other: "RoutePattern") -> bool:
        """True if some concrete path would match both patterns."""
        if len(self.segments) != len(other.segments):
            return False
        for a, b in zip(self.segments, other.segments):
            if a is None and b is None:
                continue
            if a is None or b is None:
                # A wildcard never matches an empty segment.
                if (a if a is not None else b) == "":
                    return False
                continue
            if a != b:
                return False
        return True


@functools.lru_cache(maxsize=1024)
def compile_route(template: str, scope: RouteScope) -> RoutePattern:
    """
    Compile a route template. ``[name]`` segments become wildcards; the rest
    must match literally. E.g. "/news/[slug]" matches "/news/x" but not
    "/news", "/news/" or "/news/x/y".
    """
    parts = _split(template)
    if parts is None:
        raise RouteConfigError(f"Route template must start with '/': {template!r}")
    segments = tuple(None if _is_wildcard(seg) else seg for seg in parts)
    return RoutePattern(template=template, scope=scope, segments=segments)


@dataclass(frozen=True, slots=True)
class SubtreeMatcher:
    """Matches ``prefix`` itself and any path below it (segment boundary)."""

    prefix: str

    def matches(self, path: str) -> bool:
        if not path or not isinstance(path, str):
            return False
        return path == self.prefix or path.startswith(self.prefix + "/")


class RouteTable:
    """Immutable public/protected/role tables with the classifier queries."""

    __slots__ = ("_dashboards", "_protected", "_public", "_role_routes")

    def __init__(
        self,
        public: Iterable[str],
        protected: Iterable[str],
        role_routes: Mapping[str, Iterable[str]],
        role_dashboards: Mapping[str, str],
    ) -> None:
        self._public = tuple(compile_route(t, RouteScope.PUBLIC) for t in public)
        self._protected = tuple(
            compile_route(t, RouteScope.PROTECTED) for t in protected
        )
        self._role_routes = {
            _role_key(role): tuple(SubtreeMatcher(p.rstrip("/") or "/") for p in prefixes)
            for role, prefixes in role_routes.items()
        }
        self._dashboards = {_role_key(role): path for role, path in role_dashboards.items()}
        self._assert_disjoint()
        self._assert_dashboards_reachable()

    def _assert_disjoint(self) -> None:
        for pub in self._public:
            for prot in self._protected:
                if pub.overlaps(prot):
                    raise RouteConfigError(
                        f"Route {pub.template!r} (public) overlaps "
                        f"{prot.template!r} (protected)"
                    )

    def _assert_dashboards_reachable(self) -> None:
        for role, path in self._dashboards.items():
            if not self.is_protected(path) or not self.has_access(path, role):
                raise RouteConfigError(
                    f"Dashboard {path!r} for role {role!r} is not a protected "
                    "route the role can access"
                )

    def is_public(self, path: str) -> bool:
        return any(p.matches(path) for p in self._public)

    def is_protected(self, path: str) -> bool:
        return any(p.matches(path) for p in self._protected)

    def is_known(self, path: str) -> bool:
        return self.is_public(path) or self.is_protected(path)

    def has_access(self, path: str, role: str | None) -> bool:
        """True iff ``path`` lies in one of the subtrees granted to ``role``."""
        if not role:
            return False
        matchers = self._role_routes.get(_role_key(role))
        if not matchers:
            return False
        return any(m.matches(path) for m in matchers)

    def dashboard_for(self, role: str | None) -> str | None:
        if not role:
            return None
        return self._dashboards.get(_role_key(role))


ROUTE_TABLE = RouteTable(PUBLIC_ROUTES, PROTECTED_ROUTES, ROLE_ROUTES, ROLE_DASHBOARDS)


def is_public_route(path: str) -> bool:
    return ROUTE_TABLE.is_public(path)


def is_protected_route(path: str) -> bool:
    return ROUTE_TABLE.is_protected(path)


def is_known_route(path: str) -> bool:
    return ROUTE_TABLE.is_known(path)


def has_access_to_route(path: str, role: str | None) -> bool:
    return ROUTE_TABLE.has_access(path, role)
