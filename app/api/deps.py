from collections.abc import Callable, Generator

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.services.permissions import Permission, permission_gate


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_admin_id(x_admin_id: str | None = Header(default=None)) -> str:
    """Identity of the acting admin, supplied by the upstream auth layer.

    Permissions are checked per operation by the services themselves.
    """
    if not x_admin_id:
        raise HTTPException(status_code=401, detail="Missing X-Admin-Id header")
    return x_admin_id


def require_permission(permission: Permission) -> Callable[..., str]:
    """Router-level guard for read-only endpoints that have no service method."""

    def _require(
        admin_id: str = Depends(get_admin_id), db: Session = Depends(get_db)
    ) -> str:
        permission_gate.require_admin_permission(db, admin_id, permission)
        return admin_id

    return _require
