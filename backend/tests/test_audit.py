"""Tests for the audit logger and its hash chain"""
from unittest import mock

from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request

from adminguard.config import settings
from adminguard.models.audit_log import AuditLog
from adminguard.services.audit import AuditEvent, AuditLogger, RequestMeta
from adminguard.utils import chain as chain_utils


def _write(db, count=3):
    audit = AuditLogger(db)
    meta = RequestMeta(ip_address="203.0.113.7", user_agent="pytest")
    for i in range(count):
        audit.log_login(f"user-{i}", meta, two_factor_used=bool(i % 2))
    return audit


def test_first_entry_links_to_genesis(db):
    _write(db, count=1)
    entry = db.query(AuditLog).one()
    assert entry.previous_hash == chain_utils.genesis_hash()
    assert entry.ip_address == "203.0.113.7"


def test_intact_chain_verifies(db):
    report = _write(db).verify_chain()
    assert report.valid is True
    assert report.total_entries == 3
    assert report.broken_at is None


def test_empty_chain_is_valid(db):
    report = AuditLogger(db).verify_chain()
    assert report.valid is True
    assert report.total_entries == 0


def test_edited_entry_breaks_the_chain(db):
    audit = _write(db)
    entries = db.query(AuditLog).order_by(AuditLog.id.asc()).all()
    entries[1].action = "admin_logout"
    db.commit()

    report = audit.verify_chain()
    assert report.valid is False
    assert report.broken_at == entries[1].log_id


def test_deleted_entry_breaks_the_chain(db):
    audit = _write(db)
    entries = db.query(AuditLog).order_by(AuditLog.id.asc()).all()
    db.delete(entries[1])
    db.commit()

    assert audit.verify_chain().broken_at == entries[2].log_id


def test_failed_append_is_swallowed(db):
    audit = AuditLogger(db)
    with mock.patch.object(db, "commit", side_effect=SQLAlchemyError("disk full")):
        assert audit.append(AuditEvent(action="admin_login", resource_type="auth")) is None
    assert db.query(AuditLog).count() == 0


def test_request_meta_ignores_forwarded_for_by_default(monkeypatch):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(b"x-forwarded-for", b"198.51.100.1, 10.0.0.1"), (b"user-agent", b"pytest")],
        "client": ("10.0.0.2", 1234),
    }
    assert RequestMeta.from_connection(Request(scope)).ip_address == "10.0.0.2"

    monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", True)
    meta = RequestMeta.from_connection(Request(scope))
    assert meta.ip_address == "198.51.100.1"
    assert meta.user_agent == "pytest"


def test_verify_endpoint_for_super_admin(client, db, two_factor_admin, session_token):
    _write(db)
    response = client.get(
        "/admin/api/audit/verify",
        headers={"Authorization": f"Bearer {session_token(two_factor_admin)}"},
    )
    assert response.status_code == 200
    assert response.json() == {"valid": True, "total_entries": 3, "broken_at": None}


def test_verify_endpoint_requires_super_admin(client, admin_user, session_token):
    response = client.get(
        "/admin/api/audit/verify",
        headers={"Authorization": f"Bearer {session_token(admin_user)}"},
    )
    assert response.status_code == 403
    assert response.json() == {"error": "Role 'super_admin' or higher required"}
