"""Service request lifecycle: quote / accept negotiation through completion.

All legal status changes live in ``TRANSITIONS``; anything not in the table is
rejected with ``IllegalTransition``. ``RequestLifecycle`` applies a transition,
commits it together with exactly one StatusEvent, and only then fans out
notifications through the injected ``NotificationService``.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .errors import ActionNotPermitted, IllegalTransition, InsufficientQuoteInput, NotFound, QuoteConflict
from .geo import coerce_point
from .matching import match_operator, match_operators
from .models import (
    Operator, OperatorTierStats, Quote, QuoteStatus, RequestStatus, ServiceRequest,
    StatusEvent, User, UserRole,
)
from .notifications import DeliveryResult, NotificationService, Recipient
from .quote_engine import compute_auto_quote, find_config
from .schemas import ServiceRequestCreate, details_for

logger = logging.getLogger(__name__)


class Event(str, enum.Enum):
    submit_quote = "submit_quote"
    accept_quote = "accept_quote"
    decline_quote = "decline_quote"
    withdraw_quote = "withdraw_quote"
    start_work = "start_work"
    complete_work = "complete_work"
    cancel = "cancel"


TRANSITIONS = {
    (RequestStatus.pending, Event.submit_quote): RequestStatus.quoted,
    (RequestStatus.quoted, Event.submit_quote): RequestStatus.quoted,
    (RequestStatus.quoted, Event.accept_quote): RequestStatus.accepted,
    (RequestStatus.quoted, Event.decline_quote): RequestStatus.quoted,
    (RequestStatus.quoted, Event.withdraw_quote): RequestStatus.quoted,
    (RequestStatus.accepted, Event.start_work): RequestStatus.in_progress,
    (RequestStatus.in_progress, Event.complete_work): RequestStatus.completed,
    (RequestStatus.pending, Event.cancel): RequestStatus.cancelled,
    (RequestStatus.quoted, Event.cancel): RequestStatus.cancelled,
    (RequestStatus.accepted, Event.cancel): RequestStatus.cancelled,
}

EVENT_ACTORS = {
    Event.submit_quote: {UserRole.operator},
    Event.accept_quote: {UserRole.customer},
    Event.decline_quote: {UserRole.customer},
    Event.withdraw_quote: {UserRole.operator},
    Event.start_work: {UserRole.operator},
    Event.complete_work: {UserRole.operator},
    Event.cancel: {UserRole.customer, UserRole.operator, UserRole.admin},
}

EVENT_TYPES = {
    Event.submit_quote: "quote_submitted",
    Event.accept_quote: "quote_accepted",
    Event.decline_quote: "quote_declined",
    Event.withdraw_quote: "quote_withdrawn",
    Event.start_work: "job_started",
    Event.complete_work: "job_completed",
    Event.cancel: "request_cancelled",
}

OPEN_STATUSES = (RequestStatus.pending, RequestStatus.quoted)


def next_status(current, event) -> RequestStatus:
    """Status reached by applying ``event`` to ``current``."""
    key = (RequestStatus(current), Event(event))
    if key not in TRANSITIONS:
        raise IllegalTransition(key[0].value, key[1].value)
    return TRANSITIONS[key]


def allowed_events(current) -> List[Event]:
    current = RequestStatus(current)
    return [e for (s, e) in TRANSITIONS if s is current]


def check_actor(event, role) -> None:
    if UserRole(role) not in EVENT_ACTORS[Event(event)]:
        raise ActionNotPermitted(f"{UserRole(role).value} may not {Event(event).value}")


@dataclass
class TransitionResult:
    request: ServiceRequest
    event: StatusEvent
    quote: Optional[Quote] = None
    deliveries: List[DeliveryResult] = field(default_factory=list)


class RequestLifecycle:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)

    # --- helpers ------------------------------------------------------------

    def _operator_for(self, user: User) -> Operator:
        if user.operator is None:
            raise ActionNotPermitted("An operator profile is required")
        return user.operator

    def _quote_for(self, request: ServiceRequest, quote_id: int) -> Quote:
        quote = self.db.get(Quote, quote_id)
        if quote is None or quote.request_id != request.id:
            raise NotFound("Quote not found")
        return quote

    def _require_customer(self, request: ServiceRequest, user: User) -> None:
        if request.customer_id != user.id:
            raise ActionNotPermitted("Not your request")

    def _require_assigned(self, request: ServiceRequest, operator: Operator) -> None:
        if request.operator_id != operator.id:
            raise ActionNotPermitted("Request is not assigned to this operator")

    def _commit(self, write: Callable[[], None]) -> None:
        """Run ``write`` and commit; concurrent edits surface as QuoteConflict."""
        try:
            write()
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise QuoteConflict("Conflicting quote state") from e
        except StaleDataError as e:
            self.db.rollback()
            raise QuoteConflict("Request was changed by someone else; reload and retry") from e

    def _apply(
        self,
        request: ServiceRequest,
        event: Event,
        user: User,
        mutate: Optional[Callable[[], dict]] = None,
    ) -> StatusEvent:
        """Move ``request`` along ``event`` and record one StatusEvent, atomically."""
        target = next_status(request.status, event)
        from_status = RequestStatus(request.status)
        evt = StatusEvent(
            request_id=request.id,
            actor_role=UserRole(user.role).value,
            actor_id=user.id,
            from_status=from_status.value,
            to_status=target.value,
            event_type=EVENT_TYPES[event],
        )

        def write():
            metadata = mutate() if mutate else {}
            request.status = target
            # Always write the row so its version is checked, even for quoted -> quoted
            request.updated_at = datetime.utcnow()
            evt.meta = metadata or None
            self.db.add(evt)

        self._commit(write)
        self.db.refresh(evt)
        logger.info(
            "Request %s: %s -> %s (%s by %s %s)",
            request.id, from_status.value, target.value, EVENT_TYPES[event],
            UserRole(user.role).value, user.id,
        )
        return evt

    def _customer_recipient(self, request, title, body, type_, metadata=None) -> Recipient:
        return Recipient(request.customer_id, "customer", title, body, type_, metadata or {})

    def _operator_recipient(self, operator, title, body, type_, metadata=None) -> Recipient:
        return Recipient(
            operator.user_id, "operator", title, body, type_,
            dict(metadata or {}, operator_id=operator.id),
        )

    # --- operations ---------------------------------------------------------

    def open_request(self, user: User, payload: ServiceRequestCreate, operators=None) -> TransitionResult:
        """Create a pending request and tell every matching operator about it."""
        if UserRole(user.role) is not UserRole.customer:
            raise ActionNotPermitted("Only customers can open requests")
        details = details_for(payload.service_type, payload.details)
        request = ServiceRequest(
            customer_id=user.id,
            service_type=payload.service_type,
            is_emergency=payload.is_emergency,
            description=payload.description,
            location=payload.location,
            latitude=payload.latitude,
            longitude=payload.longitude,
            details=details.model_dump(),
            budget_range=payload.budget_range,
            status=RequestStatus.pending,
        )
        self.db.add(request)
        self.db.flush()
        evt = StatusEvent(
            request_id=request.id,
            actor_role=UserRole.customer.value,
            actor_id=user.id,
            from_status=None,
            to_status=RequestStatus.pending.value,
            event_type="request_created",
            meta={"service_type": payload.service_type},
        )
        self.db.add(evt)
        self.db.commit()
        self.db.refresh(request)
        self.db.refresh(evt)
        logger.info("Request %s opened by customer %s (%s)", request.id, user.id, request.service_type)

        if operators is None:
            operators = self.db.query(Operator).filter(Operator.is_online.is_(True)).all()
        who = user.full_name or "A customer"
        recipients = [
            self._operator_recipient(
                m.operator, "New Service Request", f"{who} requested {request.service_type}",
                "request_update", {"service_type": request.service_type, "distance_km": m.distance_km},
            )
            for m in match_operators(request, operators)
        ]
        deliveries = self.notifier.fan_out(evt, recipients)
        return TransitionResult(request=request, event=evt, deliveries=deliveries)

    def _require_eligible(self, request: ServiceRequest, operator: Operator) -> None:
        if match_operator(operator, coerce_point(request.latitude, request.longitude), request.service_type) is None:
            raise ActionNotPermitted("Request is outside this operator's service area or services")

    def suggest_quote(self, request: ServiceRequest, operator: Operator):
        config = find_config(operator.pricing_configs, operator.tier, request.service_type)
        return compute_auto_quote(config, request)

    def quote_suggestion(self, request: ServiceRequest, operator: Operator):
        """Auto-quote for an operator who could quote on ``request`` right now."""
        next_status(request.status, Event.submit_quote)
        self._require_eligible(request, operator)
        return self.suggest_quote(request, operator)

    def submit_quote(self, request: ServiceRequest, user: User, amount=None, notes=None) -> TransitionResult:
        check_actor(Event.submit_quote, user.role)
        next_status(request.status, Event.submit_quote)
        operator = self._operator_for(user)
        self._require_eligible(request, operator)
        live = (
            self.db.query(Quote)
            .filter(
                Quote.request_id == request.id,
                Quote.operator_id == operator.id,
                Quote.status == QuoteStatus.sent,
            )
            .first()
        )
        if live is not None:
            raise QuoteConflict("A quote from this operator is already awaiting a response")

        suggestion = self.suggest_quote(request, operator)
        if amount is None:
            if suggestion.insufficient:
                raise InsufficientQuoteInput(
                    "No pricing config and the budget range could not be read; enter an amount"
                )
            amount = suggestion.amount

        quote = Quote(
            request_id=request.id,
            operator_id=operator.id,
            tier=operator.tier,
            amount=round(float(amount), 2),
            breakdown=suggestion.model_dump(),
            notes=notes,
            status=QuoteStatus.sent,
        )

        def mutate():
            self.db.add(quote)
            self.db.flush()
            return {"quote_id": quote.id, "amount": quote.amount}

        evt = self._apply(request, Event.submit_quote, user, mutate)
        self.db.refresh(quote)
        deliveries = self.notifier.fan_out(evt, [
            self._customer_recipient(
                request, "New Quote Received",
                f"{operator.name} quoted ${quote.amount:.2f} for your request", "quote_received",
                {"quote_id": quote.id, "amount": quote.amount, "operator_name": operator.name},
            )
        ])
        return TransitionResult(request=request, event=evt, quote=quote, deliveries=deliveries)

    def accept_quote(self, request: ServiceRequest, quote_id: int, user: User) -> TransitionResult:
        check_actor(Event.accept_quote, user.role)
        next_status(request.status, Event.accept_quote)
        self._require_customer(request, user)
        quote = self._quote_for(request, quote_id)
        if quote.status is not QuoteStatus.sent:
            raise QuoteConflict(f"Quote is {quote.status.value}, not sent")

        def mutate():
            now = datetime.utcnow()
            superseded = []
            for q in request.quotes:
                if q.id == quote.id:
                    continue
                if q.status is QuoteStatus.sent:
                    q.status = QuoteStatus.superseded
                    q.responded_at = now
                    superseded.append(q.id)
            quote.status = QuoteStatus.accepted
            quote.responded_at = now
            request.operator_id = quote.operator_id
            request.accepted_quote_id = quote.id
            return {"quote_id": quote.id, "amount": quote.amount, "superseded": superseded}

        evt = self._apply(request, Event.accept_quote, user, mutate)
        who = user.full_name or "The customer"
        deliveries = self.notifier.fan_out(evt, [
            self._operator_recipient(
                quote.operator, "Quote Accepted!", f"{who} accepted your quote", "quote_accepted",
                {"quote_id": quote.id},
            )
        ])
        return TransitionResult(request=request, event=evt, quote=quote, deliveries=deliveries)

    def decline_quote(self, request: ServiceRequest, quote_id: int, user: User) -> TransitionResult:
        check_actor(Event.decline_quote, user.role)
        next_status(request.status, Event.decline_quote)
        self._require_customer(request, user)
        quote = self._quote_for(request, quote_id)
        if quote.status is not QuoteStatus.sent:
            raise QuoteConflict(f"Quote is {quote.status.value}, not sent")

        def mutate():
            quote.status = QuoteStatus.declined
            quote.responded_at = datetime.utcnow()
            return {"quote_id": quote.id}

        evt = self._apply(request, Event.decline_quote, user, mutate)
        who = user.full_name or "The customer"
        deliveries = self.notifier.fan_out(evt, [
            self._operator_recipient(
                quote.operator, "Quote Declined", f"{who} declined your quote", "quote_declined",
                {"quote_id": quote.id},
            )
        ])
        return TransitionResult(request=request, event=evt, quote=quote, deliveries=deliveries)

    def withdraw_quote(self, request: ServiceRequest, quote_id: int, user: User) -> TransitionResult:
        check_actor(Event.withdraw_quote, user.role)
        next_status(request.status, Event.withdraw_quote)
        operator = self._operator_for(user)
        quote = self._quote_for(request, quote_id)
        if quote.operator_id != operator.id:
            raise ActionNotPermitted("Not your quote")
        if quote.status is not QuoteStatus.sent:
            raise QuoteConflict(f"Quote is {quote.status.value}, not sent")

        def mutate():
            quote.status = QuoteStatus.operator_withdrawn
            quote.responded_at = datetime.utcnow()
            return {"quote_id": quote.id}

        evt = self._apply(request, Event.withdraw_quote, user, mutate)
        deliveries = self.notifier.fan_out(evt, [
            self._customer_recipient(
                request, "Quote Withdrawn", f"{operator.name} withdrew their quote", "quote_withdrawn",
                {"quote_id": quote.id},
            )
        ])
        return TransitionResult(request=request, event=evt, quote=quote, deliveries=deliveries)

    def start_work(self, request: ServiceRequest, user: User) -> TransitionResult:
        check_actor(Event.start_work, user.role)
        next_status(request.status, Event.start_work)
        operator = self._operator_for(user)
        self._require_assigned(request, operator)

        evt = self._apply(request, Event.start_work, user)
        deliveries = self.notifier.fan_out(evt, [
            self._customer_recipient(
                request, "Job Started", f"{operator.name} has started working on your request",
                "job_started", {"operator_name": operator.name},
            )
        ])
        return TransitionResult(request=request, event=evt, deliveries=deliveries)

    def complete_work(self, request: ServiceRequest, user: User) -> TransitionResult:
        check_actor(Event.complete_work, user.role)
        next_status(request.status, Event.complete_work)
        operator = self._operator_for(user)
        self._require_assigned(request, operator)
        quote = self.db.get(Quote, request.accepted_quote_id) if request.accepted_quote_id else None

        def mutate():
            earnings = quote.amount if quote is not None else 0.0
            tier = quote.tier if quote is not None else operator.tier
            self._record_completion(operator, tier, earnings)
            return {"earnings": earnings}

        evt = self._apply(request, Event.complete_work, user, mutate)
        deliveries = self.notifier.fan_out(evt, [
            self._customer_recipient(
                request, "Job Completed", f"{operator.name} has completed your service request",
                "job_completed", {"operator_name": operator.name},
            )
        ])
        return TransitionResult(request=request, event=evt, quote=quote, deliveries=deliveries)

    def _record_completion(self, operator: Operator, tier, earnings: float) -> None:
        stats = (
            self.db.query(OperatorTierStats)
            .filter(OperatorTierStats.operator_id == operator.id, OperatorTierStats.tier == tier)
            .first()
        )
        if stats is None:
            stats = OperatorTierStats(operator_id=operator.id, tier=tier, jobs_completed=0, total_earnings=0.0)
            self.db.add(stats)
        stats.jobs_completed = (stats.jobs_completed or 0) + 1
        stats.total_earnings = round((stats.total_earnings or 0.0) + earnings, 2)
        stats.last_active_at = datetime.utcnow()

    def cancel(self, request: ServiceRequest, user: User, reason: Optional[str] = None) -> TransitionResult:
        check_actor(Event.cancel, user.role)
        next_status(request.status, Event.cancel)
        role = UserRole(user.role)
        if role is UserRole.customer:
            self._require_customer(request, user)
        elif role is UserRole.operator:
            self._require_assigned(request, self._operator_for(user))

        live_quotes = [q for q in request.quotes if q.status is QuoteStatus.sent]

        def mutate():
            now = datetime.utcnow()
            for q in live_quotes:
                q.status = QuoteStatus.superseded
                q.responded_at = now
            return {"reason": reason, "superseded": [q.id for q in live_quotes]}

        evt = self._apply(request, Event.cancel, user, mutate)

        recipients = []
        if role is not UserRole.customer:
            who = request.operator.name if role is UserRole.operator else "Support"
            body = f"{who} cancelled: {reason}" if reason else f"{who} cancelled your request"
            recipients.append(self._customer_recipient(
                request, "Request Cancelled", body, "request_cancelled", {"reason": reason},
            ))
        else:
            who = user.full_name or "The customer"
            # Assigned operator, otherwise everyone whose quote was still live
            operators = [request.operator] if request.operator is not None else [q.operator for q in live_quotes]
            for op in operators:
                recipients.append(self._operator_recipient(
                    op, "Request Cancelled", f"{who} cancelled the request", "request_cancelled",
                    {"reason": reason},
                ))
        deliveries = self.notifier.fan_out(evt, recipients)
        return TransitionResult(request=request, event=evt, deliveries=deliveries)
