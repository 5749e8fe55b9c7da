"""Admin page placeholders.

The screens themselves are served by the console front end; these handlers
stand in for them so every admin path has something for the Route Guard to
pass through to.
"""
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

router = APIRouter(prefix="/admin", tags=["pages"], include_in_schema=False)

_PAGE = """<!doctype html>
<html><head><title>{title} | AdminGuard</title></head>
<body data-page="{slug}" data-admin-id="{admin_id}"><h1>{title}</h1></body></html>
"""


def _render(request: Request, title: str, slug: str) -> HTMLResponse:
    admin_id = getattr(request.state, "admin_id", "") or ""
    return HTMLResponse(_PAGE.format(title=title, slug=slug, admin_id=admin_id))


@router.get("/login")
def login_page(request: Request):
    return _render(request, "Sign in", "login")


@router.get("/login/2fa")
def two_factor_page(request: Request):
    return _render(request, "Two-factor verification", "login-2fa")


@router.get("/dashboard")
def dashboard_page(request: Request):
    return _render(request, "Dashboard", "dashboard")


@router.get("/users")
def users_page(request: Request):
    return _render(request, "Users", "users")


@router.get("/settings")
def settings_page(request: Request):
    return _render(request, "Settings", "settings")


@router.get("/audit")
def audit_page(request: Request):
    return _render(request, "Audit log", "audit")


@router.get("/analytics")
def analytics_page(request: Request):
    return _render(request, "Analytics", "analytics")


@router.get("/reports")
def reports_page(request: Request):
    return _render(request, "Reports", "reports")
