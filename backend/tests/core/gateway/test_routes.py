"""Unit tests for gateway route classification and role access."""

import pytest

from gatekeeper.core.gateway.routes import (
    PROTECTED_ROUTES,
    PUBLIC_ROUTES,
    ROLE_DASHBOARDS,
    ROLE_ROUTES,
    ROUTE_TABLE,
    RouteConfigError,
    RouteScope,
    RouteTable,
    UserRole,
    compile_route,
    has_access_to_route,
    is_known_route,
    is_protected_route,
    is_public_route,
)

SAMPLE_PATHS = [
    "/",
    "/login",
    "/news",
    "/news/opening-day",
    "/news/a/b",
    "/schools/",
    "/admin",
    "/admin/articles/42",
    "/admin/articles/new",
    "/administrator",
    "/head-writer/faq",
    "/writer/articles/7",
    "/preview/articles/3",
    "/league-operator/matches/9",
    "/unknown",
    "",
    "admin",
]


@pytest.mark.parametrize("path", SAMPLE_PATHS)
def test_public_and_protected_are_disjoint(path: str) -> None:
    assert not (is_public_route(path) and is_protected_route(path))


@pytest.mark.parametrize("path", SAMPLE_PATHS)
def test_known_is_public_or_protected(path: str) -> None:
    assert is_known_route(path) == (is_public_route(path) or is_protected_route(path))


def test_static_and_dynamic_matching() -> None:
    assert is_public_route("/")
    assert is_public_route("/news/opening-day")
    assert is_public_route("/schools/north-high")
    assert not is_public_route("/news/a/b")
    assert not is_public_route("/news//")
    assert is_protected_route("/admin/matches/12")
    assert is_protected_route("/admin/articles/new")
    assert not is_known_route("/admin/matches/12/edit")
    assert not is_known_route("/unknown")


def test_single_trailing_slash_is_ignored() -> None:
    assert is_protected_route("/admin/")
    assert is_protected_route("/admin/articles/42/")
    assert is_public_route("/news/")
    assert is_public_route("/")
    assert has_access_to_route("/writer/", "writer")
    assert not has_access_to_route("/admin/", "writer")


def test_malformed_paths_are_unknown() -> None:
    for path in ("", "admin", None):
        assert not is_known_route(path)  # type: ignore[arg-type]
        assert not has_access_to_route(path, "admin")  # type: ignore[arg-type]


def test_compile_route_wildcards() -> None:
    pattern = compile_route("/admin/articles/[id]", RouteScope.PROTECTED)
    assert pattern.segments == ("admin", "articles", None)
    assert pattern.matches("/admin/articles/5")
    assert not pattern.matches("/admin/articles")
    with pytest.raises(RouteConfigError):
        compile_route("news", RouteScope.PUBLIC)


@pytest.mark.parametrize("role", [r.value for r in UserRole])
def test_every_dashboard_is_protected_and_reachable(role: str) -> None:
    dashboard = ROUTE_TABLE.dashboard_for(role)
    assert dashboard == ROLE_DASHBOARDS[role]
    assert is_protected_route(dashboard)
    assert has_access_to_route(dashboard, role)


def test_role_subtrees_are_exclusive() -> None:
    """Outside the shared /preview tree, a role's subtree belongs to it alone."""
    for role, prefixes in ROLE_ROUTES.items():
        for prefix in prefixes:
            if prefix == "/preview":
                continue
            for other in ROLE_ROUTES:
                expected = other == role
                assert has_access_to_route(prefix, other) is expected
                assert has_access_to_route(prefix + "/anything", other) is expected


def test_preview_is_shared_by_admin_and_head_writer() -> None:
    assert has_access_to_route("/preview/articles/1", "admin")
    assert has_access_to_route("/preview/articles/1", "head_writer")
    assert not has_access_to_route("/preview/articles/1", "writer")
    assert not has_access_to_route("/preview/articles/1", "league_operator")


def test_access_respects_segment_boundary() -> None:
    assert not has_access_to_route("/administrator", "admin")
    assert not has_access_to_route("/writer-tools", "writer")


def test_unknown_or_missing_role_has_no_access() -> None:
    assert not has_access_to_route("/admin", None)
    assert not has_access_to_route("/admin", "")
    assert not has_access_to_route("/admin", "superuser")
    assert ROUTE_TABLE.dashboard_for("superuser") is None
    assert ROUTE_TABLE.dashboard_for(None) is None


def test_enum_roles_are_accepted() -> None:
    assert has_access_to_route("/admin", UserRole.ADMIN)  # type: ignore[arg-type]
    assert ROUTE_TABLE.dashboard_for(UserRole.WRITER) == "/writer"  # type: ignore[arg-type]


def test_overlapping_tables_are_rejected() -> None:
    with pytest.raises(RouteConfigError, match="overlaps"):
        RouteTable(["/news/[slug]"], ["/news/draft"], {}, {})
    with pytest.raises(RouteConfigError):
        RouteTable(["/admin"], ["/admin"], {}, {})


def test_different_depths_do_not_overlap() -> None:
    table = RouteTable(["/news"], ["/news/[id]"], {}, {})
    assert table.is_public("/news")
    assert table.is_protected("/news/1")


def test_unreachable_dashboard_is_rejected() -> None:
    with pytest.raises(RouteConfigError, match="Dashboard"):
        RouteTable(["/"], ["/admin"], {"admin": ["/other"]}, {"admin": "/admin"})
    with pytest.raises(RouteConfigError):
        RouteTable(["/", "/admin"], [], {"admin": ["/admin"]}, {"admin": "/admin"})


def test_default_tables_are_consistent() -> None:
    table = RouteTable(PUBLIC_ROUTES, PROTECTED_ROUTES, ROLE_ROUTES, ROLE_DASHBOARDS)
    assert table.is_known("/faq")
