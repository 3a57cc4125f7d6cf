import logging
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError
from pydantic.alias_generators import to_camel, to_snake
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from .models import OperatorTier, QuoteStatus, RequestStatus, ServiceType, UserRole

logger = logging.getLogger(__name__)

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = None
    role: Literal["customer","operator","admin"] = "customer"

class UserOut(BaseModel):
    id: int
    email: EmailStr
    full_name: Optional[str]
    role: UserRole
    created_at: datetime
    class Config:
        from_attributes = True

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

# --- service-specific detail payloads -------------------------------------
# Accept both snake_case and the camelCase keys older clients send; numbers
# sent for text fields (item counts, weights) are kept as strings.

class _Details(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", coerce_numbers_to_str=True,
    )

class SnowPlowingDetails(_Details):
    kind: Literal["snow_plowing"] = "snow_plowing"
    area_size: Optional[str] = None
    surface_type: Optional[str] = None
    snow_depth: Optional[str] = None
    has_obstacles: Optional[bool] = None
    needs_salting: Optional[bool] = None

class TowingDetails(_Details):
    kind: Literal["towing"] = "towing"
    vehicle_type: Optional[str] = None
    vehicle_condition: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    destination: Optional[str] = None
    reason: Optional[str] = None

class HaulingDetails(_Details):
    kind: Literal["hauling"] = "hauling"
    load_size: Optional[str] = None
    item_type: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    needs_loading_help: Optional[bool] = None
    disposal_location: Optional[str] = None
    number_of_items: Optional[str] = None

class CourierDetails(_Details):
    kind: Literal["courier"] = "courier"
    package_size: Optional[str] = None
    package_weight: Optional[str] = None
    is_fragile: Optional[bool] = None
    delivery_instructions: Optional[str] = None
    requires_signature: Optional[bool] = None
    destination: Optional[str] = None

class OtherDetails(_Details):
    """Services without a known shape keep their payload verbatim."""
    kind: Literal["other"] = "other"
    service_type: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

ServiceDetails = Annotated[
    Union[SnowPlowingDetails, TowingDetails, HaulingDetails, CourierDetails, OtherDetails],
    Field(discriminator="kind"),
]

DETAIL_MODELS = {
    ServiceType.snow_plowing.value: SnowPlowingDetails,
    ServiceType.towing.value: TowingDetails,
    ServiceType.hauling.value: HaulingDetails,
    ServiceType.courier.value: CourierDetails,
}

def details_for(service_type: str, raw: Optional[dict]) -> ServiceDetails:
    """Build the detail variant for ``service_type`` from a loose payload."""
    raw = dict(raw or {})
    model = DETAIL_MODELS.get(service_type)
    if model is None:
        if raw.get("kind") == "other":
            try:
                return OtherDetails.model_validate(raw)
            except ValidationError:
                logger.warning("Malformed %s detail payload, storing it as received", service_type)
        raw.pop("kind", None)
        return OtherDetails(service_type=service_type, payload=raw)
    raw["kind"] = model.model_fields["kind"].default
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        bad = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
    # Drop unreadable fields rather than reject the whole request
    kept = {k: v for k, v in raw.items() if not bad & {k, to_camel(k), to_snake(k)}}
    logger.warning("Ignoring unreadable %s detail fields: %s", service_type, ", ".join(sorted(bad)))
    try:
        return model.model_validate(kept)
    except ValidationError:
        raw.pop("kind", None)
        return OtherDetails(service_type=service_type, payload=raw)

# --- service requests ------------------------------------------------------

class ServiceRequestCreate(BaseModel):
    service_type: str = Field(min_length=1)
    is_emergency: bool = False
    description: str = Field(min_length=1)
    location: str = Field(min_length=1)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    details: Optional[dict] = None
    budget_range: Optional[str] = None

class ServiceRequestOut(BaseModel):
    id: int
    customer_id: int
    operator_id: Optional[int]
    service_type: str
    is_emergency: bool
    description: str
    location: str
    latitude: Optional[float]
    longitude: Optional[float]
    details: Optional[dict]
    budget_range: Optional[str]
    status: RequestStatus
    accepted_quote_id: Optional[int]
    created_at: datetime
    class Config:
        from_attributes = True

class CancelRequest(BaseModel):
    reason: Optional[str] = None

# --- operators & pricing ---------------------------------------------------

class OperatorProfileIn(BaseModel):
    name: str = Field(min_length=1)
    tier: Literal["manual","equipped","professional"] = "manual"
    home_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    home_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    operating_radius_km: Optional[float] = Field(default=None, gt=0)
    services: List[str] = Field(default_factory=list)
    is_online: bool = False

class OperatorOut(BaseModel):
    id: int
    user_id: int
    name: str
    tier: OperatorTier
    home_lat: Optional[float]
    home_lng: Optional[float]
    operating_radius_km: Optional[float]
    services: List[str]
    is_online: bool
    class Config:
        from_attributes = True

class OnlineToggle(BaseModel):
    is_online: bool

class OperatorMatchOut(BaseModel):
    operator_id: int
    name: str
    tier: str
    distance_km: Optional[float]

class PricingConfigIn(BaseModel):
    tier: Optional[Literal["manual","equipped","professional"]] = None
    service_type: str = Field(min_length=1)
    base_rate: float = Field(ge=0)
    per_km_rate: float = Field(default=0, ge=0)
    minimum_fee: float = Field(default=0, ge=0)
    urgency_multipliers: Optional[Dict[str, float]] = None

class PricingConfigOut(BaseModel):
    id: int
    operator_id: int
    tier: OperatorTier
    service_type: str
    base_rate: float
    per_km_rate: float
    minimum_fee: float
    urgency_multipliers: Optional[Dict[str, float]]
    class Config:
        from_attributes = True

class TierStatsOut(BaseModel):
    tier: OperatorTier
    jobs_completed: int
    total_earnings: float
    last_active_at: Optional[datetime]
    class Config:
        from_attributes = True

class TierOut(BaseModel):
    tier: str
    label: str
    description: str
    radius_km: Optional[float]
    radius_max_km: Optional[float]
    pricing_multiplier: float

# --- auto-quote & quotes ---------------------------------------------------

class PricingBreakdown(BaseModel):
    base_rate: float
    estimated_distance_km: float
    per_km_rate: float
    distance_cost: float
    urgency_multiplier: float
    minimum_fee: float
    total: float

class BudgetBreakdown(BaseModel):
    budget_range: Optional[str]
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None

class AutoQuote(BaseModel):
    amount: float
    method: Literal["pricing_config","customer_budget"]
    # True only when no config exists and the budget could not be parsed;
    # the 0 amount is then "cannot quote", never a real price
    insufficient: bool = False
    breakdown: Union[PricingBreakdown, BudgetBreakdown]

class QuoteCreate(BaseModel):
    # Omitted amount means "send the suggested auto-quote"
    amount: Optional[float] = Field(default=None, gt=0)
    notes: Optional[str] = None

class QuoteOut(BaseModel):
    id: int
    request_id: int
    operator_id: int
    tier: OperatorTier
    amount: float
    breakdown: Optional[dict]
    notes: Optional[str]
    status: QuoteStatus
    created_at: datetime
    responded_at: Optional[datetime]
    class Config:
        from_attributes = True

# --- events & notifications ------------------------------------------------

class StatusEventOut(BaseModel):
    id: int
    request_id: int
    actor_role: str
    actor_id: Optional[int]
    from_status: Optional[str]
    to_status: str
    event_type: str
    metadata: Optional[dict] = Field(default=None, validation_alias="meta")
    created_at: datetime
    class Config:
        from_attributes = True

class NotificationOut(BaseModel):
    id: int
    audience_role: str
    title: str
    body: str
    type: str
    request_id: Optional[int]
    status_event_id: Optional[int]
    metadata: Optional[dict] = Field(default=None, validation_alias="meta")
    delivery_state: str
    read_at: Optional[datetime]
    created_at: datetime
    class Config:
        from_attributes = True
