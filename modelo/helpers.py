import math
import re
from decimal import ROUND_HALF_UP, Decimal

APP_CONFIG = {
    "max_images_per_service": 5,
    "max_images_per_profile": 6,
    "max_application_images": 3,
    "default_search_radius": 30,  # km
    "service_expiration_days": 30,
    "application_expiration_days": 7,
    "max_message_length": 1000,
    "default_page_size": 10,
    "max_page_size": 50,
}

SERVICE_TYPES = [
    {"id": "all", "name": "Tout", "icon": "apps-outline"},
    {"id": "hair", "name": "Coiffure", "icon": "cut-outline"},
    {"id": "makeup", "name": "Maquillage", "icon": "color-palette-outline"},
    {"id": "photography", "name": "Photographie", "icon": "camera-outline"},
    {"id": "fashion", "name": "Mode", "icon": "shirt-outline"},
    {"id": "nails", "name": "Ongles", "icon": "hand-left-outline"},
    {"id": "aesthetic", "name": "Esthétique", "icon": "flower-outline"},
    {"id": "other", "name": "Autre", "icon": "ellipsis-horizontal-outline"},
]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_text_valid(text: str, max_length: int = APP_CONFIG["max_message_length"]) -> bool:
    return len(text.strip()) > 0 and len(text) <= max_length


def truncate_text(text: str, max_length: int = 100) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return f"{text[:max_length - 3]}..."


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km, rounded to one decimal."""
    r = 6371
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return float(Decimal(str(r * c)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_phone_number(phone_number: str) -> str:
    cleaned = re.sub(r"\D", "", phone_number)
    if len(cleaned) == 10:
        return " ".join(cleaned[i:i + 2] for i in range(0, 10, 2))
    return phone_number


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def is_strong_password(password: str) -> bool:
    return (len(password) >= 8
            and re.search(r"[A-Z]", password) is not None
            and re.search(r"[a-z]", password) is not None
            and re.search(r"[0-9]", password) is not None)


def ensure_https(url: str) -> str:
    if not url:
        return ""
    if not url.startswith(("http://", "https://")):
        return f"https://{url}"
    return url


def format_instagram_username(username: str) -> str:
    if not username:
        return ""
    return username if username.startswith("@") else f"@{username}"
