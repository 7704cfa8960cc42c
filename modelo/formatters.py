"""
Display formatting: dates, prices and French labels for enum values.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union

from .repositories.base import to_datetime
from .schemas import ApplicationStatus, EyeColor, Gender, HairColor, PaymentType, ProfessionalStatus, ServiceType, UserRole

SERVICE_TYPE_LABELS = {
    ServiceType.HAIR.value: "Coiffure",
    ServiceType.MAKEUP.value: "Maquillage",
    ServiceType.PHOTOGRAPHY.value: "Photographie",
    ServiceType.FASHION.value: "Mode",
    ServiceType.NAILS.value: "Ongles",
    ServiceType.AESTHETIC.value: "Esthétique",
    ServiceType.OTHER.value: "Autre",
}

APPLICATION_STATUS_LABELS = {
    ApplicationStatus.PENDING.value: "En attente",
    ApplicationStatus.ACCEPTED.value: "Acceptée",
    ApplicationStatus.REJECTED.value: "Refusée",
    ApplicationStatus.CANCELLED.value: "Annulée",
    ApplicationStatus.COMPLETED.value: "Terminée",
}

ROLE_LABELS = {UserRole.MODEL.value: "Modèle", UserRole.PROFESSIONAL.value: "Professionnel"}

GENDER_LABELS = {Gender.MALE.value: "Homme", Gender.FEMALE.value: "Femme", Gender.OTHER.value: "Autre"}

HAIR_COLOR_LABELS = {
    HairColor.BLACK.value: "Noir",
    HairColor.BROWN.value: "Brun",
    HairColor.BLONDE.value: "Blond",
    HairColor.RED.value: "Roux",
    HairColor.WHITE.value: "Blanc",
    HairColor.GRAY.value: "Gris",
    HairColor.OTHER.value: "Autre",
}

EYE_COLOR_LABELS = {
    EyeColor.BROWN.value: "Brun",
    EyeColor.BLUE.value: "Bleu",
    EyeColor.GREEN.value: "Vert",
    EyeColor.GRAY.value: "Gris",
    EyeColor.HAZEL.value: "Noisette",
    EyeColor.OTHER.value: "Autre",
}

PROFESSIONAL_STATUS_LABELS = {
    ProfessionalStatus.FREELANCE.value: "Freelance",
    ProfessionalStatus.SELF_EMPLOYED.value: "Auto-entrepreneur",
    ProfessionalStatus.COMPANY.value: "Société",
}

UNSPECIFIED = "Non spécifié"
UNKNOWN = "Inconnu"


def _value(v) -> Optional[str]:
    return getattr(v, "value", v)


def format_date(date) -> str:
    return to_datetime(date).strftime("%d/%m/%Y")


def format_date_time(date) -> str:
    return to_datetime(date).strftime("%d/%m/%Y à %H:%M")


def format_message_date(date, now: Optional[datetime] = None) -> str:
    """``HH:MM`` today, ``Hier à HH:MM`` yesterday, full date otherwise."""
    parsed = to_datetime(date)
    now = now or datetime.now(timezone.utc)
    if parsed.date() == now.date():
        return parsed.strftime("%H:%M")
    if parsed.date() == (now - timedelta(days=1)).date():
        return "Hier à " + parsed.strftime("%H:%M")
    return parsed.strftime("%d/%m/%Y à %H:%M")


def format_relative_date(date, now: Optional[datetime] = None) -> str:
    parsed = to_datetime(date)
    now = now or datetime.now(timezone.utc)
    delta = now - parsed
    future = delta.total_seconds() < 0
    seconds = abs(delta.total_seconds())
    if seconds < 45:
        text = "moins d'une minute"
    elif seconds < 90:
        text = "1 minute"
    elif seconds < 45 * 60:
        text = f"{round(seconds / 60)} minutes"
    elif seconds < 90 * 60:
        text = "environ 1 heure"
    elif seconds < 24 * 3600:
        text = f"environ {round(seconds / 3600)} heures"
    elif seconds < 42 * 3600:
        text = "1 jour"
    elif seconds < 30 * 86400:
        text = f"{round(seconds / 86400)} jours"
    elif seconds < 45 * 86400:
        text = "environ 1 mois"
    elif seconds < 365 * 86400:
        text = f"{round(seconds / (30 * 86400))} mois"
    else:
        years = round(seconds / (365 * 86400))
        text = "environ 1 an" if years == 1 else f"environ {years} ans"
    return f"dans {text}" if future else f"il y a {text}"


def format_service_type(service_type: Union[str, List[str]]) -> str:
    if isinstance(service_type, (list, tuple)):
        return ", ".join(format_service_type(t) for t in service_type)
    return SERVICE_TYPE_LABELS.get(_value(service_type), UNKNOWN)


def format_payment_type(payment_type, amount: Optional[float] = None) -> str:
    payment_type = _value(payment_type)
    if payment_type == PaymentType.FREE.value:
        return "Gratuit"
    if payment_type == PaymentType.PAID.value:
        return f"{amount:g} €" if amount else "Payant"
    return UNKNOWN


def format_application_status(status) -> str:
    return APPLICATION_STATUS_LABELS.get(_value(status), UNKNOWN)


def format_user_role(role) -> str:
    return ROLE_LABELS.get(_value(role), UNKNOWN)


def format_gender(gender) -> str:
    return GENDER_LABELS.get(_value(gender), UNSPECIFIED)


def format_hair_color(color) -> str:
    return HAIR_COLOR_LABELS.get(_value(color), UNSPECIFIED)


def format_eye_color(color) -> str:
    return EYE_COLOR_LABELS.get(_value(color), UNSPECIFIED)


def format_professional_status(status) -> str:
    return PROFESSIONAL_STATUS_LABELS.get(_value(status), UNSPECIFIED)


def format_rating(rating: float) -> str:
    rounded = int(rating + 0.5)
    stars = "".join("★" if i <= rounded else "☆" for i in range(1, 6))
    return f"{rating:.1f} {stars}"


def format_number(number: int) -> str:
    return f"{number:,}".replace(",", " ")


def format_price(price: float) -> str:
    return f"{price:.2f} €".replace(".", ",")


def format_height(height: float) -> str:
    return f"{height:g} cm"


def format_age(age: int) -> str:
    return f"{age} an{'s' if age > 1 else ''}"
