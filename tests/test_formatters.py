from datetime import datetime, timedelta, timezone

import pytest

from modelo import formatters
from modelo.helpers import (calculate_distance, ensure_https, format_instagram_username,
                            format_phone_number, is_strong_password, is_text_valid, truncate_text)
from modelo.repositories.base import to_datetime

NOW = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)


def test_dates():
    assert formatters.format_date(NOW) == "05/03/2024"
    assert formatters.format_date_time(NOW) == "05/03/2024 à 14:30"


def test_message_date():
    assert formatters.format_message_date(NOW - timedelta(hours=2), NOW) == "12:30"
    assert formatters.format_message_date(datetime(2024, 3, 4, 9, 5, tzinfo=timezone.utc), NOW) == "Hier à 09:05"
    assert formatters.format_message_date(datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc), NOW) == "01/02/2024 à 08:00"


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=30), "il y a moins d'une minute"),
    (timedelta(minutes=10), "il y a 10 minutes"),
    (timedelta(hours=3), "il y a environ 3 heures"),
    (timedelta(days=-2), "dans 2 jours"),
    (timedelta(days=400), "il y a environ 1 an"),
])
def test_relative_date(delta, expected):
    assert formatters.format_relative_date(NOW - delta, NOW) == expected


def test_labels():
    assert formatters.format_service_type(["hair", "makeup"]) == "Coiffure, Maquillage"
    assert formatters.format_service_type("unknown") == "Inconnu"
    assert formatters.format_application_status("accepted") == "Acceptée"
    assert formatters.format_user_role("professional") == "Professionnel"
    assert formatters.format_gender(None) == "Non spécifié"
    assert formatters.format_hair_color("red") == "Roux"
    assert formatters.format_eye_color("hazel") == "Noisette"
    assert formatters.format_professional_status("self_employed") == "Auto-entrepreneur"


def test_payment():
    assert formatters.format_payment_type("free") == "Gratuit"
    assert formatters.format_payment_type("paid", 50) == "50 €"
    assert formatters.format_payment_type("paid") == "Payant"


def test_numbers():
    assert formatters.format_rating(4.3) == "4.3 ★★★★☆"
    assert formatters.format_rating(4.5) == "4.5 ★★★★★"
    assert formatters.format_number(1234567) == "1 234 567"
    assert formatters.format_price(12.5) == "12,50 €"
    assert formatters.format_height(172.5) == "172.5 cm"
    assert formatters.format_age(1) == "1 an"
    assert formatters.format_age(25) == "25 ans"


def test_to_datetime_accepts_wire_forms():
    expected = datetime(2024, 3, 5, 14, 30, tzinfo=timezone.utc)
    assert to_datetime(int(expected.timestamp() * 1000)) == expected
    assert to_datetime("2024-03-05T14:30:00Z") == expected
    assert to_datetime({"seconds": int(expected.timestamp()), "nanoseconds": 0}) == expected
    assert to_datetime(datetime(2024, 3, 5, 14, 30)) == expected
    assert to_datetime(None) is None
    with pytest.raises(TypeError):
        to_datetime([1, 2])


def test_text_helpers():
    assert truncate_text("abcdefgh", 5) == "ab..."
    assert truncate_text("abc", 5) == "abc"
    assert truncate_text("", 5) == ""
    assert is_text_valid("hello")
    assert not is_text_valid("   ")
    assert not is_text_valid("x" * 1001)


def test_contact_helpers():
    assert format_phone_number("06.12.34.56.78") == "06 12 34 56 78"
    assert format_phone_number("+33 6") == "+33 6"
    assert ensure_https("example.com") == "https://example.com"
    assert ensure_https("http://example.com") == "http://example.com"
    assert format_instagram_username("modelo") == "@modelo"
    assert format_instagram_username("@modelo") == "@modelo"


def test_password_strength():
    assert is_strong_password("Secret123")
    assert not is_strong_password("secret123")
    assert not is_strong_password("Sec1")


def test_distance_paris_lyon():
    distance = calculate_distance(48.8566, 2.3522, 45.764, 4.8357)
    assert 385 < distance < 400
    assert distance == round(distance, 1)
    assert calculate_distance(48.8566, 2.3522, 48.8566, 2.3522) == 0
