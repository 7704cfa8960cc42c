"""
Form validation run before any write reaches a repository.

Each form is a pydantic model; ``validate_form`` turns failures into a
FormValidationError whose messages are ready for display.
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, EmailStr, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import FormValidationError
from .helpers import APP_CONFIG, is_strong_password, is_valid_email
from .schemas import Gender, PaymentType, ProfessionalStatus, ServiceType

PHONE_RE = re.compile(r"^(\+33|0)[1-9](\d{2}){4}$")
HANDLE_RE = re.compile(r"^(@)?[a-zA-Z0-9._]+$")
URL_RE = re.compile(r"^(https?://)?([\da-z.-]+)\.([a-z.]{2,6})([/\w .-]*)*/?$")

F = TypeVar("F", bound=BaseModel)


def _length(value: Optional[str], lo: int, hi: int, too_short: str, too_long: str) -> Optional[str]:
    if value is None:
        return value
    if len(value.strip()) < lo:
        raise ValueError(too_short)
    if len(value) > hi:
        raise ValueError(too_long)
    return value


def validate_form(form: Type[F], data: Dict[str, Any]) -> F:
    try:
        return form.model_validate(data)
    except ValidationError as e:
        errors: Dict[str, List[str]] = {}
        for err in e.errors():
            key = ".".join(str(p) for p in err["loc"]) or "form"
            errors.setdefault(key, []).append(err["msg"].replace("Value error, ", ""))
        raise FormValidationError(errors)


class Form(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)


class SocialMediaForm(Form):
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    tiktok: Optional[str] = None
    portfolio: Optional[str] = None

    @field_validator("instagram")
    @classmethod
    def check_instagram(cls, v):
        if v and not HANDLE_RE.match(v):
            raise ValueError("Nom d'utilisateur Instagram invalide")
        return v

    @field_validator("tiktok")
    @classmethod
    def check_tiktok(cls, v):
        if v and not HANDLE_RE.match(v):
            raise ValueError("Nom d'utilisateur TikTok invalide")
        return v

    @field_validator("portfolio")
    @classmethod
    def check_portfolio(cls, v):
        if v and not URL_RE.match(v):
            raise ValueError("URL invalide")
        return v


# ---------------------------
# Authentication
# ---------------------------
class LoginForm(Form):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if not v:
            raise ValueError("Le mot de passe est requis")
        return v


class RegistrationForm(Form):
    full_name: str
    email: str
    password: str
    confirm_password: str
    city: str
    terms_accepted: bool = False

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, v):
        return _length(v, 2, 50, "Le nom doit contenir au moins 2 caractères",
                       "Le nom ne peut pas dépasser 50 caractères")

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        if not v:
            raise ValueError("L'email est requis")
        if not is_valid_email(v):
            raise ValueError("Email invalide")
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if len(v) < 8:
            raise ValueError("Le mot de passe doit contenir au moins 8 caractères")
        if not is_strong_password(v):
            raise ValueError("Le mot de passe doit contenir au moins une majuscule, une minuscule et un chiffre")
        return v

    @field_validator("city")
    @classmethod
    def check_city(cls, v):
        return _length(v, 2, 50, "La ville doit contenir au moins 2 caractères",
                       "La ville ne peut pas dépasser 50 caractères")

    @field_validator("terms_accepted")
    @classmethod
    def check_terms(cls, v):
        if not v:
            raise ValueError("Vous devez accepter les conditions d'utilisation")
        return v

    @model_validator(mode="after")
    def check_confirmation(self):
        if self.password != self.confirm_password:
            raise ValueError("Les mots de passe ne correspondent pas")
        return self


class ModelRegistrationForm(RegistrationForm):
    age: int
    gender: Gender
    interests: List[str]

    @field_validator("age")
    @classmethod
    def check_age(cls, v):
        if v < 18:
            raise ValueError("Vous devez avoir au moins 18 ans")
        if v > 100:
            raise ValueError("Age invalide")
        return v

    @field_validator("interests")
    @classmethod
    def check_interests(cls, v):
        if not v:
            raise ValueError("Sélectionnez au moins un centre d'intérêt")
        return v


class ProfessionalRegistrationForm(RegistrationForm):
    business_name: Optional[str] = None
    status: ProfessionalStatus
    services: List[ServiceType]

    @field_validator("business_name")
    @classmethod
    def check_business_name(cls, v):
        return _length(v, 2, 50, "Le nom commercial doit contenir au moins 2 caractères",
                       "Le nom commercial ne peut pas dépasser 50 caractères")

    @field_validator("services")
    @classmethod
    def check_services(cls, v):
        if not v:
            raise ValueError("Sélectionnez au moins un service proposé")
        return v


# ---------------------------
# Services & applications
# ---------------------------
class ServiceDateForm(Form):
    start_date: datetime
    end_date: Optional[datetime] = None
    duration: Optional[float] = None
    is_flexible: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def as_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v):
        if v is not None and v <= 0:
            raise ValueError("La durée doit être positive")
        return v

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("La date de fin doit être ultérieure à la date de début")
        return self


class ServiceLocationForm(Form):
    city: str
    address: Optional[str] = None
    postal_code: Optional[str] = None
    coordinates: Optional[Dict[str, float]] = None
    is_remote: Optional[bool] = None

    @model_validator(mode="after")
    def check_address(self):
        if not self.city:
            raise ValueError("La ville est requise")
        if self.is_remote is False and not self.address:
            raise ValueError("L'adresse est requise")
        return self


class PaymentForm(Form):
    type: PaymentType
    amount: Optional[float] = None
    details: Optional[str] = None

    @model_validator(mode="after")
    def check_amount(self):
        if self.type == PaymentType.PAID.value:
            if self.amount is None:
                raise ValueError("Le montant est requis")
            if self.amount <= 0:
                raise ValueError("Le montant doit être positif")
        return self


class CriteriaForm(Form):
    gender: Optional[Gender] = None
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    height_min: Optional[float] = None
    height_max: Optional[float] = None
    hair_color: Optional[List[str]] = None
    eye_color: Optional[List[str]] = None
    experience: Optional[str] = None
    specific_requirements: Optional[str] = None

    @model_validator(mode="after")
    def check_ages(self):
        if self.age_min is not None and self.age_min < 18:
            raise ValueError("L'âge minimum doit être d'au moins 18 ans")
        if self.age_min is not None and self.age_max is not None and self.age_max < self.age_min:
            raise ValueError("L'âge maximum doit être supérieur à l'âge minimum")
        return self


class ServiceForm(Form):
    title: str
    description: str
    type: Union[ServiceType, List[ServiceType]]
    date: ServiceDateForm
    location: ServiceLocationForm
    payment: PaymentForm
    criteria: CriteriaForm = CriteriaForm()
    is_urgent: bool = False
    images: List[Any] = []

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        return _length(v, 5, 100, "Le titre doit contenir au moins 5 caractères",
                       "Le titre ne peut pas dépasser 100 caractères")

    @field_validator("description")
    @classmethod
    def check_description(cls, v):
        return _length(v, 20, 2000, "La description doit contenir au moins 20 caractères",
                       "La description ne peut pas dépasser 2000 caractères")

    @field_validator("images")
    @classmethod
    def check_images(cls, v):
        if len(v) > APP_CONFIG["max_images_per_service"]:
            raise ValueError("Vous ne pouvez pas ajouter plus de 5 images")
        return v


class NewServiceForm(ServiceForm):
    """Creation additionally requires a start date in the future."""

    @model_validator(mode="after")
    def check_future(self):
        if self.date.start_date < datetime.now(timezone.utc):
            raise ValueError("La date de début doit être ultérieure à aujourd'hui")
        return self


class ApplicationForm(Form):
    message: str
    photos: List[Any]

    @field_validator("message")
    @classmethod
    def check_message(cls, v):
        return _length(v, 10, 1000, "Le message doit contenir au moins 10 caractères",
                       "Le message ne peut pas dépasser 1000 caractères")

    @field_validator("photos")
    @classmethod
    def check_photos(cls, v):
        if len(v) < 1:
            raise ValueError("Vous devez ajouter au moins une photo")
        if len(v) > APP_CONFIG["max_application_images"]:
            raise ValueError("Vous ne pouvez pas ajouter plus de 3 photos")
        return v


# ---------------------------
# Profiles & ratings
# ---------------------------
class ProfileUpdateForm(Form):
    full_name: str
    bio: Optional[str] = None
    phone_number: Optional[str] = None
    social_media: Optional[SocialMediaForm] = None

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, v):
        return _length(v, 2, 50, "Le nom doit contenir au moins 2 caractères",
                       "Le nom ne peut pas dépasser 50 caractères")

    @field_validator("bio")
    @classmethod
    def check_bio(cls, v):
        if v and len(v) > 500:
            raise ValueError("La biographie ne peut pas dépasser 500 caractères")
        return v

    @field_validator("phone_number")
    @classmethod
    def check_phone(cls, v):
        if v and not PHONE_RE.match(v):
            raise ValueError("Numéro de téléphone invalide")
        return v


class ModelProfileUpdateForm(ProfileUpdateForm):
    age: int
    gender: Gender
    height: Optional[float] = None
    hair_color: Optional[str] = None
    eye_color: Optional[str] = None

    @field_validator("age")
    @classmethod
    def check_age(cls, v):
        if v < 18:
            raise ValueError("Vous devez avoir au moins 18 ans")
        if v > 100:
            raise ValueError("Age invalide")
        return v

    @field_validator("height")
    @classmethod
    def check_height(cls, v):
        if v is not None and not 100 <= v <= 250:
            raise ValueError("La taille doit être comprise entre 100 et 250 cm")
        return v


class ProfessionalProfileUpdateForm(ProfileUpdateForm):
    business_name: Optional[str] = None
    status: ProfessionalStatus
    services: List[ServiceType]

    @field_validator("services")
    @classmethod
    def check_services(cls, v):
        if not v:
            raise ValueError("Sélectionnez au moins un service proposé")
        return v


class RatingForm(Form):
    score: int
    comment: Optional[str] = None
    is_public: bool = True

    @field_validator("score")
    @classmethod
    def check_score(cls, v):
        if v < 1:
            raise ValueError("La note minimale est 1")
        if v > 5:
            raise ValueError("La note maximale est 5")
        return v

    @field_validator("comment")
    @classmethod
    def check_comment(cls, v):
        if v and len(v) > 500:
            raise ValueError("Le commentaire ne peut pas dépasser 500 caractères")
        return v
