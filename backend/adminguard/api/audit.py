"""Audit log integrity endpoint"""
from fastapi import APIRouter, Depends

from adminguard.api.deps import get_audit_logger, require_role
from adminguard.schemas.audit import ChainVerifyResponse
from adminguard.services.audit import AuditLogger
from adminguard.services.session_resolver import ResolvedSession
from adminguard.utils.logger import logger

router = APIRouter(prefix="/admin/api/audit", tags=["audit"])


@router.get("/verify", response_model=ChainVerifyResponse)
def verify_chain(
    session: ResolvedSession = Depends(require_role("super_admin")),
    audit: AuditLogger = Depends(get_audit_logger),
) -> ChainVerifyResponse:
    """
    Verify the audit log hash chain (super admins only).

    Recomputes every link in insertion order and reports the ``log_id`` of
    the first entry that no longer matches.
    """
    report = audit.verify_chain()
    if not report.valid:
        logger.warning(
            f"Audit chain broken at {report.broken_at}",
            extra={"admin_id": session.user_id, "outcome": "failed"},
        )
    return ChainVerifyResponse(
        valid=report.valid,
        total_entries=report.total_entries,
        broken_at=report.broken_at,
    )
