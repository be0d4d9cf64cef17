from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_admin_id, get_db
from app.schemas.analytics import ChurnAnalysis, RevenuePoint, SubscriptionAnalytics
from app.schemas.billing import (
    ProductCreate,
    ProductDeleteResult,
    ProductRead,
    ProductStats,
    ProductUpdate,
    SubscriptionCancel,
    SubscriptionDetail,
    SubscriptionList,
    SubscriptionListItem,
    SubscriptionRead,
)
from app.schemas.common import ListResponse
from app.services import billing as billing_service
from app.services.response import list_response

router = APIRouter(tags=["billing"])


# ── Subscriptions ────────────────────────────────────────


@router.get("/subscriptions", response_model=SubscriptionList)
def list_subscriptions(
    search: str | None = None,
    status: str | None = None,
    interval: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscriptions.list(
        db, admin_id, search, status, interval, limit, offset
    )


@router.get("/subscriptions/search", response_model=list[SubscriptionListItem])
def search_subscriptions(
    q: str = Query(min_length=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscriptions.search(db, admin_id, q, limit)


@router.get("/subscriptions/analytics/summary", response_model=SubscriptionAnalytics)
def subscription_summary(
    period: Literal["week", "month", "year"] = "month",
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscription_analytics.summary(db, admin_id, period)


@router.get("/subscriptions/analytics/churn", response_model=ChurnAnalysis)
def subscription_churn(
    period: Literal["month", "quarter", "year"] = "month",
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscription_analytics.churn(db, admin_id, period)


@router.get("/subscriptions/analytics/revenue", response_model=list[RevenuePoint])
def subscription_revenue(
    period: Literal["7d", "30d", "90d", "1y"] = "30d",
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscription_analytics.revenue(db, admin_id, period)


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionDetail)
def get_subscription(
    subscription_id: str,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscriptions.get_detail(db, admin_id, subscription_id)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionRead)
def cancel_subscription(
    subscription_id: str,
    payload: SubscriptionCancel,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.subscriptions.cancel(
        db, admin_id, subscription_id, payload.reason
    )


# ── Products ─────────────────────────────────────────────


@router.post(
    "/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED
)
def create_product(
    payload: ProductCreate,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.products.create(db, admin_id, payload)


@router.get("/products/search", response_model=list[ProductRead])
def search_products(
    q: str = Query(default=""),
    limit: int = Query(default=10, ge=1, le=100),
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.products.search(db, admin_id, q, limit)


@router.get("/products/stats", response_model=ProductStats)
def product_stats(
    admin_id: str = Depends(get_admin_id), db: Session = Depends(get_db)
):
    return billing_service.products.stats(db, admin_id)


@router.get("/products/{item_id}", response_model=ProductRead)
def get_product(
    item_id: str,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.products.get(db, admin_id, item_id)


@router.get("/products", response_model=ListResponse[ProductRead])
def list_products(
    is_active: bool | None = None,
    category: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    items, total = billing_service.products.list(
        db, admin_id, is_active, category, order_by, order_dir, limit, offset
    )
    return list_response(items, limit, offset, total=total)


@router.patch("/products/{item_id}", response_model=ProductRead)
def update_product(
    item_id: str,
    payload: ProductUpdate,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    return billing_service.products.update(db, admin_id, item_id, payload)


@router.delete("/products/{item_id}", response_model=ProductDeleteResult)
def delete_product(
    item_id: str,
    hard: bool = False,
    admin_id: str = Depends(get_admin_id),
    db: Session = Depends(get_db),
):
    mode = billing_service.products.delete(db, admin_id, item_id, hard_delete=hard)
    return {"success": True, "deleted": mode}
