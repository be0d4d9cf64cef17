from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_admin_id, get_db
from app.schemas.polar import (
    ConnectionStatus,
    ConnectionTestResult,
    ProductRefreshResult,
    ProductSyncResult,
    SyncRequest,
    SyncResult,
    SyncStatus,
)
from app.services.polar_sync import polar_sync

router = APIRouter(prefix="/polar", tags=["polar"])


@router.post("/sync", response_model=SyncResult)
def sync_polar_data(
    payload: SyncRequest,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return polar_sync.sync_polar_data(
        db, admin_id, payload.sync_type, payload.force_update
    )


@router.get("/sync/status", response_model=SyncStatus)
def get_sync_status(
    admin_id: str = Depends(get_admin_id), db: Session = Depends(get_db)
):
    return polar_sync.get_sync_status(db, admin_id)


@router.post("/products/sync", response_model=ProductSyncResult)
def sync_products(
    admin_id: str = Depends(get_admin_id), db: Session = Depends(get_db)
):
    return polar_sync.sync_products(db, admin_id)


@router.post("/products/{product_id}/sync", response_model=ProductRefreshResult)
def sync_product(
    product_id: str,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return polar_sync.sync_product(db, admin_id, product_id)


@router.get("/connection", response_model=ConnectionStatus)
def check_connection(
    admin_id: str = Depends(get_admin_id), db: Session = Depends(get_db)
):
    return polar_sync.check_polar_connection(db, admin_id)


@router.post("/connection/test", response_model=ConnectionTestResult)
def test_connection(
    admin_id: str = Depends(get_admin_id), db: Session = Depends(get_db)
):
    return polar_sync.test_polar_connection(db, admin_id)
