"""Service request routes: open, browse, quote, accept and move through the lifecycle.

Every status change goes through ``RequestLifecycle``; the handlers here only
load records, check visibility and shape responses. Domain errors bubble up to
the handlers registered in ``main.py``.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..deps_jwt import get_current_operator, get_current_user
from ..lifecycle import RequestLifecycle
from ..matching import by_distance, match_operators
from .. import models
from ..schemas import (
    AutoQuote, CancelRequest, OperatorMatchOut, QuoteCreate, QuoteOut, ServiceRequestCreate,
    ServiceRequestOut, StatusEventOut,
)

router = APIRouter(prefix="/requests", tags=["requests"])


def get_lifecycle(db: Session = Depends(get_db)) -> RequestLifecycle:
    return RequestLifecycle(db)


def load_request(request_id: int, db: Session) -> models.ServiceRequest:
    req = db.get(models.ServiceRequest, request_id)
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")
    return req


def can_view(req: models.ServiceRequest, user: models.User) -> bool:
    if user.role == models.UserRole.admin or req.customer_id == user.id:
        return True
    op = user.operator
    if op is None:
        return False
    # Operators see requests they are assigned to or have quoted on
    return req.operator_id == op.id or any(q.operator_id == op.id for q in req.quotes)


def visible_request(request_id: int, db: Session, user: models.User) -> models.ServiceRequest:
    req = load_request(request_id, db)
    if not can_view(req, user):
        raise HTTPException(status_code=403, detail="Not your request")
    return req


@router.post("", response_model=ServiceRequestOut, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: ServiceRequestCreate,
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    return lifecycle.open_request(user, payload).request


@router.get("/mine", response_model=List[ServiceRequestOut])
def list_my_requests(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if user.operator is not None:
        return (
            db.query(models.ServiceRequest)
            .filter(models.ServiceRequest.operator_id == user.operator.id)
            .order_by(models.ServiceRequest.created_at.desc())
            .all()
        )
    return (
        db.query(models.ServiceRequest)
        .filter(models.ServiceRequest.customer_id == user.id)
        .order_by(models.ServiceRequest.created_at.desc())
        .all()
    )


@router.get("/{request_id}", response_model=ServiceRequestOut)
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    if not can_view(req, user) and req.status not in (models.RequestStatus.pending, models.RequestStatus.quoted):
        raise HTTPException(status_code=403, detail="Not your request")
    return req


@router.get("/{request_id}/matches", response_model=List[OperatorMatchOut])
def list_matches(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    """Operators currently eligible to see this request, nearest first."""
    req = visible_request(request_id, db, user)
    operators = db.query(models.Operator).filter(models.Operator.is_online.is_(True)).all()
    return [
        OperatorMatchOut(
            operator_id=m.operator.id,
            name=m.operator.name,
            tier=m.operator.tier.value,
            distance_km=round(m.distance_km, 2) if m.distance_km is not None else None,
        )
        for m in by_distance(match_operators(req, operators))
    ]


@router.get("/{request_id}/auto-quote", response_model=AutoQuote)
def auto_quote(
    request_id: int,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    op: models.Operator = Depends(get_current_operator),
):
    """Suggested price for the calling operator on a request they may quote on.

    ``insufficient`` means no usable input. Closed requests are 409, requests
    outside the operator's area or services are 403.
    """
    req = load_request(request_id, db)
    return lifecycle.quote_suggestion(req, op)


@router.post("/{request_id}/quotes", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def submit_quote(
    request_id: int,
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    return lifecycle.submit_quote(req, user, amount=payload.amount, notes=payload.notes).quote


@router.get("/{request_id}/quotes", response_model=List[QuoteOut])
def list_quotes(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    req = visible_request(request_id, db, user)
    if req.customer_id == user.id or user.role == models.UserRole.admin:
        return req.quotes
    return [q for q in req.quotes if q.operator_id == user.operator.id]


@router.post("/{request_id}/quotes/{quote_id}/accept", response_model=ServiceRequestOut)
def accept_quote(
    request_id: int,
    quote_id: int,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    return lifecycle.accept_quote(req, quote_id, user).request


@router.post("/{request_id}/quotes/{quote_id}/decline", response_model=QuoteOut)
def decline_quote(
    request_id: int,
    quote_id: int,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    return lifecycle.decline_quote(req, quote_id, user).quote


@router.post("/{request_id}/quotes/{quote_id}/withdraw", response_model=QuoteOut)
def withdraw_quote(
    request_id: int,
    quote_id: int,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    return lifecycle.withdraw_quote(req, quote_id, user).quote


@router.post("/{request_id}/start", response_model=ServiceRequestOut)
def start_work(
    request_id: int,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    return lifecycle.start_work(req, user).request


@router.post("/{request_id}/complete", response_model=ServiceRequestOut)
def complete_work(
    request_id: int,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    return lifecycle.complete_work(req, user).request


@router.post("/{request_id}/cancel", response_model=ServiceRequestOut)
def cancel_request(
    request_id: int,
    payload: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
    user: models.User = Depends(get_current_user),
):
    req = load_request(request_id, db)
    reason = payload.reason if payload else None
    return lifecycle.cancel(req, user, reason=reason).request


@router.get("/{request_id}/events", response_model=List[StatusEventOut])
def list_events(
    request_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    visible_request(request_id, db, user)
    return (
        db.query(models.StatusEvent)
        .filter(models.StatusEvent.request_id == request_id)
        .order_by(models.StatusEvent.id)
        .all()
    )
