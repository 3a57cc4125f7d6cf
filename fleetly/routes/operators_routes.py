"""Operator profile, pricing configuration, request feed and tier stats."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps_jwt import get_current_operator, get_current_user
from ..geo import coerce_point
from ..lifecycle import OPEN_STATUSES
from ..matching import match_operator
from .. import models
from ..schemas import (
    OnlineToggle, OperatorOut, OperatorProfileIn, PricingConfigIn, PricingConfigOut,
    ServiceRequestOut, TierStatsOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/operators", tags=["operators"])


@router.post("/me", response_model=OperatorOut)
def upsert_profile(
    payload: OperatorProfileIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Create the caller's operator profile, or replace it."""
    if user.role != models.UserRole.operator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operators only")
    op = user.operator
    if op is None:
        op = models.Operator(user_id=user.id)
        db.add(op)
    op.name = payload.name
    op.tier = models.OperatorTier(payload.tier)
    op.home_lat = payload.home_lat
    op.home_lng = payload.home_lng
    op.operating_radius_km = payload.operating_radius_km
    op.services = list(payload.services)
    op.is_online = payload.is_online
    db.commit()
    db.refresh(op)
    logger.info("Operator %s profile saved (tier=%s, online=%s)", op.id, op.tier.value, op.is_online)
    return op


@router.get("/me", response_model=OperatorOut)
def read_profile(op: models.Operator = Depends(get_current_operator)):
    return op


@router.patch("/me/online", response_model=OperatorOut)
def set_online(
    payload: OnlineToggle,
    db: Session = Depends(get_db),
    op: models.Operator = Depends(get_current_operator),
):
    op.is_online = payload.is_online
    db.commit()
    db.refresh(op)
    logger.info("Operator %s is now %s", op.id, "online" if op.is_online else "offline")
    return op


@router.put("/me/pricing", response_model=PricingConfigOut)
def upsert_pricing(
    payload: PricingConfigIn,
    db: Session = Depends(get_db),
    op: models.Operator = Depends(get_current_operator),
):
    tier = models.OperatorTier(payload.tier) if payload.tier else op.tier
    cfg = (
        db.query(models.PricingConfig)
        .filter(
            models.PricingConfig.operator_id == op.id,
            models.PricingConfig.tier == tier,
            models.PricingConfig.service_type == payload.service_type,
        )
        .first()
    )
    if cfg is None:
        cfg = models.PricingConfig(operator_id=op.id, tier=tier, service_type=payload.service_type)
        db.add(cfg)
    cfg.base_rate = payload.base_rate
    cfg.per_km_rate = payload.per_km_rate
    cfg.minimum_fee = payload.minimum_fee
    cfg.urgency_multipliers = payload.urgency_multipliers
    db.commit()
    db.refresh(cfg)
    return cfg


@router.get("/me/feed", response_model=List[ServiceRequestOut])
def request_feed(
    db: Session = Depends(get_db),
    op: models.Operator = Depends(get_current_operator),
):
    """Open requests this operator is eligible to quote on."""
    open_requests = (
        db.query(models.ServiceRequest)
        .filter(models.ServiceRequest.status.in_(OPEN_STATUSES))
        .order_by(models.ServiceRequest.created_at.desc())
        .all()
    )
    return [
        r for r in open_requests
        if match_operator(op, coerce_point(r.latitude, r.longitude), r.service_type) is not None
    ]


@router.get("/me/stats", response_model=List[TierStatsOut])
def tier_stats(
    db: Session = Depends(get_db),
    op: models.Operator = Depends(get_current_operator),
):
    return db.query(models.OperatorTierStats).filter(models.OperatorTierStats.operator_id == op.id).all()


@router.get("/{operator_id}/pricing", response_model=List[PricingConfigOut])
def list_pricing(
    operator_id: int,
    tier: Optional[str] = None,
    db: Session = Depends(get_db),
    _user: models.User = Depends(get_current_user),
):
    q = db.query(models.PricingConfig).filter(models.PricingConfig.operator_id == operator_id)
    if tier:
        try:
            q = q.filter(models.PricingConfig.tier == models.OperatorTier(tier))
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Unknown tier: {tier}")
    return q.order_by(models.PricingConfig.id).all()
