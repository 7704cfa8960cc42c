from datetime import datetime, timedelta, timezone

import pytest

from modelo.errors import FormValidationError
from modelo.navigation import ROUTES, Navigator
from modelo.validation import (ApplicationForm, LoginForm, ModelProfileUpdateForm, NewServiceForm,
                               RatingForm, RegistrationForm, ServiceForm, validate_form)


def errors_for(form, data):
    with pytest.raises(FormValidationError) as exc_info:
        validate_form(form, data)
    return exc_info.value.errors


def service_form(**overrides):
    data = {
        "title": "Shooting éditorial",
        "description": "Recherche modèle pour un shooting éditorial en extérieur.",
        "type": ["photography"],
        "date": {"startDate": datetime.now(timezone.utc) + timedelta(days=2)},
        "location": {"city": "Paris", "address": "2 place de la Bastille"},
        "payment": {"type": "free"},
    }
    data.update(overrides)
    return data


def test_login_form():
    assert validate_form(LoginForm, {"email": "alice@example.com", "password": "x"}).password == "x"
    assert "email" in errors_for(LoginForm, {"email": "not-an-email", "password": "x"})


def test_registration_rules():
    base = {"fullName": "Alice", "email": "Alice@Example.com", "password": "Secret123",
            "confirmPassword": "Secret123", "city": "Paris", "termsAccepted": True}
    assert validate_form(RegistrationForm, base).email == "alice@example.com"

    errors = errors_for(RegistrationForm, dict(base, password="secret", confirmPassword="secret"))
    assert errors["password"] == ["Le mot de passe doit contenir au moins 8 caractères"]

    errors = errors_for(RegistrationForm, dict(base, confirmPassword="Secret124"))
    assert errors == {"form": ["Les mots de passe ne correspondent pas"]}

    errors = errors_for(RegistrationForm, dict(base, termsAccepted=False))
    assert errors["termsAccepted"] == ["Vous devez accepter les conditions d'utilisation"]


def test_service_form():
    form = validate_form(NewServiceForm, service_form())
    assert form.date.start_date.tzinfo is not None

    errors = errors_for(ServiceForm, service_form(payment={"type": "paid"}))
    assert errors["payment"] == ["Le montant est requis"]

    errors = errors_for(ServiceForm, service_form(criteria={"ageMin": 16}))
    assert errors["criteria"] == ["L'âge minimum doit être d'au moins 18 ans"]

    errors = errors_for(ServiceForm, service_form(images=["a"] * 6))
    assert errors["images"] == ["Vous ne pouvez pas ajouter plus de 5 images"]


def test_new_service_needs_future_start():
    past = {"startDate": datetime.now(timezone.utc) - timedelta(days=1)}
    errors = errors_for(NewServiceForm, service_form(date=past))
    assert errors["form"] == ["La date de début doit être ultérieure à aujourd'hui"]
    assert validate_form(ServiceForm, service_form(date=past))


def test_service_window():
    start = datetime.now(timezone.utc) + timedelta(days=2)
    errors = errors_for(ServiceForm, service_form(date={"startDate": start, "endDate": start - timedelta(hours=1)}))
    assert errors["date"] == ["La date de fin doit être ultérieure à la date de début"]


def test_application_form():
    errors = errors_for(ApplicationForm, {"message": "court", "photos": [b"1", b"2", b"3", b"4"]})
    assert errors["message"] == ["Le message doit contenir au moins 10 caractères"]
    assert errors["photos"] == ["Vous ne pouvez pas ajouter plus de 3 photos"]


def test_profile_update_form():
    base = {"fullName": "Alice", "age": 25, "gender": "female"}
    assert validate_form(ModelProfileUpdateForm, dict(base, phoneNumber="0612345678"))
    errors = errors_for(ModelProfileUpdateForm, dict(base, phoneNumber="12345", height=300,
                                                    socialMedia={"instagram": "bad handle!"}))
    assert errors["phoneNumber"] == ["Numéro de téléphone invalide"]
    assert errors["height"] == ["La taille doit être comprise entre 100 et 250 cm"]
    assert errors["socialMedia.instagram"] == ["Nom d'utilisateur Instagram invalide"]


def test_rating_form():
    assert validate_form(RatingForm, {"score": 5}).is_public
    assert errors_for(RatingForm, {"score": 6}) == {"score": ["La note maximale est 5"]}


class TestNavigation:
    def test_route_builders(self):
        assert ROUTES.service_edit("abc") == "/services/create?serviceId=abc"
        assert ROUTES.application_create("s1") == "/applications/create?serviceId=s1"
        assert ROUTES.user_profile("u 1") == "/profile?userId=u+1"
        assert ROUTES.conversation("a1") == "/messages/a1"

    def test_history(self):
        nav = Navigator()
        nav.push(ROUTES.SEARCH)
        nav.push(ROUTES.service_details("s1"))
        nav.replace(ROUTES.application_details("a1"))
        assert nav.history == [ROUTES.HOME, ROUTES.SEARCH, "/applications/a1"]
        assert nav.back() == ROUTES.SEARCH
        assert nav.back() == ROUTES.HOME
        assert nav.back() == ROUTES.HOME
        nav.reset(ROUTES.LOGIN)
        assert nav.history == [ROUTES.LOGIN]
