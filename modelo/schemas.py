"""
Database Schemas for Modelo

Each Pydantic model mirrors one MongoDB collection. Field names are snake_case
in Python and camelCase on the wire (e.g. ``professional_id`` <-> ``professionalId``).
Collections: users, services, applications, messages, ratings, categories,
featured_banners.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


USERS = "users"
SERVICES = "services"
APPLICATIONS = "applications"
MESSAGES = "messages"
RATINGS = "ratings"
CATEGORIES = "categories"
FEATURED_BANNERS = "featured_banners"


class UserRole(str, Enum):
    MODEL = "model"
    PROFESSIONAL = "professional"


class ProfessionalStatus(str, Enum):
    FREELANCE = "freelance"
    SELF_EMPLOYED = "self_employed"
    COMPANY = "company"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class HairColor(str, Enum):
    BLACK = "black"
    BROWN = "brown"
    BLONDE = "blonde"
    RED = "red"
    WHITE = "white"
    GRAY = "gray"
    OTHER = "other"


class EyeColor(str, Enum):
    BROWN = "brown"
    BLUE = "blue"
    GREEN = "green"
    GRAY = "gray"
    HAZEL = "hazel"
    OTHER = "other"


class ServiceStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ServiceType(str, Enum):
    HAIR = "hair"
    MAKEUP = "makeup"
    PHOTOGRAPHY = "photography"
    FASHION = "fashion"
    NAILS = "nails"
    AESTHETIC = "aesthetic"
    OTHER = "other"


class PaymentType(str, Enum):
    FREE = "free"
    PAID = "paid"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    LOCATION = "location"
    SYSTEM = "system"


class BannerType(str, Enum):
    SERVICE = "service"
    PROFILE = "profile"
    EXTERNAL = "external"


# Allowed status moves; anything missing is terminal.
APPLICATION_TRANSITIONS: Dict[ApplicationStatus, set] = {
    ApplicationStatus.PENDING: {ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED,
                                ApplicationStatus.CANCELLED},
    ApplicationStatus.ACCEPTED: {ApplicationStatus.COMPLETED, ApplicationStatus.CANCELLED},
}

SERVICE_TRANSITIONS: Dict[ServiceStatus, set] = {
    ServiceStatus.DRAFT: {ServiceStatus.ACTIVE, ServiceStatus.CANCELLED},
    ServiceStatus.ACTIVE: {ServiceStatus.COMPLETED, ServiceStatus.CANCELLED, ServiceStatus.EXPIRED},
}


def allowed_sources(transitions: Dict[Any, set], target) -> List[str]:
    """Statuses from which ``target`` can be reached."""
    return [src.value for src, targets in transitions.items() if target in targets]


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              use_enum_values=True, extra="ignore",
                              protected_namespaces=())

    def to_wire(self, **kwargs) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, **kwargs)


# ---------------------------
# Users
# ---------------------------
class Coordinates(Document):
    latitude: float
    longitude: float


class UserLocation(Document):
    address: Optional[str] = None
    city: str = ""
    postal_code: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    radius: float = 30


class SocialMedia(Document):
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    tiktok: Optional[str] = None
    portfolio: Optional[str] = None
    other: Optional[str] = None


class RatingSummary(Document):
    average: float = 0
    count: int = 0


class TimeSlots(Document):
    morning: bool = False
    afternoon: bool = False
    evening: bool = False


class Availability(Document):
    days: List[str] = Field(default_factory=list)
    time_slots: Optional[TimeSlots] = None


class BaseUser(Document):
    id: str = ""
    uid: str = ""
    email: EmailStr
    full_name: str
    phone_number: Optional[str] = None
    profile_picture: Optional[str] = None
    location: UserLocation = Field(default_factory=UserLocation)
    interests: List[str] = Field(default_factory=list)
    bio: Optional[str] = None
    social_media: Optional[SocialMedia] = None
    rating: Optional[RatingSummary] = None
    is_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_active: Optional[datetime] = None
    blocked_users: List[str] = Field(default_factory=list)
    fcm_tokens: List[str] = Field(default_factory=list)


class ModelUser(BaseUser):
    role: Literal["model"] = "model"
    age: int
    gender: Gender
    height: Optional[float] = None
    hair_color: Optional[HairColor] = None
    eye_color: Optional[EyeColor] = None
    photos: List[str] = Field(default_factory=list)
    experience: Optional[str] = None
    availability: Availability = Field(default_factory=Availability)


class ProfessionalUser(BaseUser):
    role: Literal["professional"] = "professional"
    business_name: Optional[str] = None
    status: ProfessionalStatus = ProfessionalStatus.FREELANCE
    services: List[ServiceType] = Field(default_factory=list)
    portfolio: List[str] = Field(default_factory=list)


User = Annotated[Union[ModelUser, ProfessionalUser], Field(discriminator="role")]
UserAdapter = TypeAdapter(User)

MODEL_ONLY_FIELDS = {"age", "gender", "height", "hairColor", "eyeColor", "photos",
                     "experience", "availability"}
PROFESSIONAL_ONLY_FIELDS = {"businessName", "status", "services", "portfolio"}


def parse_user(data: Dict[str, Any]):
    return UserAdapter.validate_python(data)


# ---------------------------
# Services
# ---------------------------
class ServiceDate(Document):
    start_date: datetime
    end_date: Optional[datetime] = None
    duration: Optional[float] = None
    is_flexible: Optional[bool] = None


class ServiceLocation(Document):
    address: Optional[str] = None
    city: str = ""
    postal_code: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    is_remote: Optional[bool] = None


class ServiceCriteria(Document):
    gender: Optional[Gender] = None
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    height_min: Optional[float] = None
    height_max: Optional[float] = None
    hair_color: Optional[List[HairColor]] = None
    eye_color: Optional[List[EyeColor]] = None
    experience: Optional[str] = None
    specific_requirements: Optional[str] = None


class Payment(Document):
    type: PaymentType = PaymentType.FREE
    amount: Optional[float] = None
    details: Optional[str] = None


class Service(Document):
    id: str = ""
    professional_id: str
    title: str
    description: str
    type: Union[ServiceType, List[ServiceType]]
    status: ServiceStatus = ServiceStatus.DRAFT
    date: ServiceDate
    location: ServiceLocation = Field(default_factory=ServiceLocation)
    criteria: ServiceCriteria = Field(default_factory=ServiceCriteria)
    payment: Payment = Field(default_factory=Payment)
    images: List[str] = Field(default_factory=list)
    is_urgent: bool = False
    application_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def types(self) -> List[str]:
        return list(self.type) if isinstance(self.type, list) else [self.type]


# ---------------------------
# Applications & messages
# ---------------------------
class Application(Document):
    id: str = ""
    service_id: str
    model_id: str
    professional_id: str
    message: str
    photos: List[str] = Field(default_factory=list)
    video: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.PENDING
    rejection_reason: Optional[str] = None
    has_unread_messages: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None


class MessageLocation(Document):
    address: str
    latitude: float
    longitude: float


class MessageContent(Document):
    text: Optional[str] = None
    media_url: Optional[str] = None
    location: Optional[MessageLocation] = None


# type -> the only populated content field
MESSAGE_CONTENT_FIELD = {
    MessageType.TEXT.value: "text",
    MessageType.SYSTEM.value: "text",
    MessageType.IMAGE.value: "media_url",
    MessageType.VIDEO.value: "media_url",
    MessageType.LOCATION.value: "location",
}


class Message(Document):
    id: str = ""
    conversation_id: str
    sender_id: str
    receiver_id: str
    type: MessageType
    content: MessageContent
    is_read: bool = False
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_content_matches_type(self) -> "Message":
        expected = MESSAGE_CONTENT_FIELD[self.type]
        filled = [name for name in ("text", "media_url", "location") if getattr(self.content, name) is not None]
        if filled != [expected]:
            raise ValueError(f"A {self.type} message carries exactly one {to_camel(expected)} content field")
        return self


# ---------------------------
# Ratings, categories, banners
# ---------------------------
class Rating(Document):
    id: str = ""
    service_id: str
    application_id: str
    rated_user_id: str
    rater_user_id: str
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    is_public: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Category(Document):
    id: str = ""
    name: str
    icon: str = ""
    color: Optional[str] = None
    order: Optional[int] = None
    is_active: bool = True


class FeaturedBanner(Document):
    id: str = ""
    title: str
    subtitle: Optional[str] = None
    image_url: str = ""
    type: BannerType
    target_id: Optional[str] = None
    external_url: Optional[str] = None
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    priority: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
