import base64
import binascii
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from . import presentation
from .auth import IdentityProvider
from .config import Settings
from .database import DocumentGateway, get_database
from .errors import ModeloError
from .schemas import UserRole
from .session import ClientSession, SessionRegistry
from .storage import BlobStorage
from .viewmodels import (ApplicationCreateViewModel, ApplicationDetailViewModel, ApplicationListViewModel,
                         HomeViewModel, MessagingViewModel, ProfileViewModel, SearchViewModel,
                         ServiceCreateViewModel, ServiceDetailViewModel, ViewModel)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------
# Utility helpers
# ---------------------------

def decode_upload(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 payload")


def _last_toast(session: ClientSession) -> Optional[str]:
    errors = [t for t in session.ctx.ui_store.toasts if t.type == "error"]
    return errors[-1].message if errors else None


def http_error(error: Optional[ModeloError], detail: Optional[str] = None) -> HTTPException:
    status_code = error.status_code if error is not None else 400
    body: Any = detail or (error.message if error is not None else "Request failed")
    errors = getattr(error, "errors", None)
    if errors:
        body = {"message": body, "errors": errors}
    return HTTPException(status_code=status_code, detail=body)


def check(vm: ViewModel, session: ClientSession, ok: Any = True) -> None:
    """Turn a failure the view-model caught into an HTTP error."""
    if vm.failure is not None or not ok:
        raise http_error(vm.failure, _last_toast(session))


def toasts(session: ClientSession) -> List[Dict[str, str]]:
    return [{"type": t.type, "message": t.message} for t in session.ctx.ui_store.toasts]


# ---------------------------
# Models (requests)
# ---------------------------
class LoginRequest(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ServiceStatusUpdate(BaseModel):
    status: str = Field(..., pattern="^(draft|active|completed|cancelled|expired)$")


class ServiceSaveRequest(BaseModel):
    form: Dict[str, Any]
    images: List[str] = []
    uploads: List[str] = Field(default_factory=list, description="base64 encoded images")
    draft: bool = False


class ApplicationCreateRequest(BaseModel):
    message: str
    photos: List[str] = Field(default_factory=list, description="base64 encoded images")


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class RatingRequest(BaseModel):
    score: int
    comment: Optional[str] = None
    is_public: bool = True


class MessageRequest(BaseModel):
    text: Optional[str] = None
    image: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PushTokenRequest(BaseModel):
    token: str


# ---------------------------
# Session dependencies
# ---------------------------

def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_session(authorization: Optional[str] = Header(None),
                registry: SessionRegistry = Depends(get_registry)) -> ClientSession:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Invalid auth scheme")
    token = authorization.split(" ", 1)[1].strip()
    try:
        session = registry.resolve(token)
    except ModeloError as e:
        raise http_error(e, "Invalid or expired token")
    if session.ctx.auth_store.user is None:
        raise HTTPException(status_code=401, detail="Profile not found")
    return session


# ---------------------------
# Health & Utility
# ---------------------------
@router.get("/test")
def test_database(registry: SessionRegistry = Depends(get_registry)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
        "sessions": len(registry),
        "live_subscriptions": registry.gateway.hub.active_subscriptions,
    }
    db = registry.gateway.db
    response["database"] = "✅ Available"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = db.name
    try:
        response["collections"] = registry.gateway.collection_names()[:10]
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# ---------------------------
# Authentication
# ---------------------------
def _signed_in(registry: SessionRegistry, session: ClientSession) -> Dict[str, Any]:
    token = registry.attach(session)
    user = session.ctx.auth_store.user
    return {
        "token": token,
        "user": presentation.profile_header(user) if user is not None else None,
        "route": session.ctx.navigator.current,
        "toasts": toasts(session),
    }


@router.post("/register")
def register(payload: Dict[str, Any] = Body(...), registry: SessionRegistry = Depends(get_registry)):
    session = registry.open()
    role = payload.get("role")
    if role == UserRole.MODEL.value:
        ok = session.auth.register_model(payload)
    elif role == UserRole.PROFESSIONAL.value:
        ok = session.auth.register_professional(payload)
    else:
        session.close()
        raise HTTPException(status_code=422, detail="role must be 'model' or 'professional'")
    if not ok:
        session.close()
        check(session.auth, session, ok)
    return _signed_in(registry, session)


@router.post("/login")
def login(payload: LoginRequest, registry: SessionRegistry = Depends(get_registry)):
    session = registry.open()
    ok = session.auth.login(payload.email, payload.password)
    if not ok:
        session.close()
        check(session.auth, session, ok)
    return _signed_in(registry, session)


@router.post("/logout")
def logout(session: ClientSession = Depends(get_session), registry: SessionRegistry = Depends(get_registry)):
    token = session.token
    ok = session.auth.logout()
    check(session.auth, session, ok)
    registry.close(token)
    return {"logged_out": True}


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, registry: SessionRegistry = Depends(get_registry)):
    session = registry.open()
    try:
        ok = session.auth.forgot_password(payload.email)
        check(session.auth, session, ok)
        return {"sent": True}
    finally:
        session.close()


# ---------------------------
# Home & search
# ---------------------------
@router.get("/")
def home(category: Optional[str] = None, q: Optional[str] = None,
         session: ClientSession = Depends(get_session)):
    vm = HomeViewModel(session.ctx)
    if q is not None:
        session.ctx.service_store.set_filter("search_query", q)
    vm.load()
    check(vm, session)
    if category is not None and category != vm.selected_category:
        vm.select_category(category)
        check(vm, session)
    return {
        "banner": vm.featured_banner.to_wire() if vm.featured_banner is not None else None,
        "categories": [c.to_wire() for c in vm.categories],
        "selected_category": vm.selected_category,
        "services": [presentation.service_card(s, vm.is_favorite(s.id)) for s in vm.services],
        "has_more": vm.has_more,
    }


@router.get("/services")
def search(q: str = "", category: Optional[str] = None, city: Optional[str] = None,
           urgent: bool = False, session: ClientSession = Depends(get_session)):
    vm = SearchViewModel(session.ctx)
    vm.search_query = q
    if category is not None:
        vm.update_local_filter("category", category)
    if city is not None:
        vm.update_local_filter("city", city)
    if urgent:
        vm.update_local_filter("only_urgent", True)
    vm.load()
    check(vm, session)
    return {
        "query": vm.search_query,
        "total": vm.total_results,
        "services": [presentation.service_card(s, vm.is_favorite(s.id)) for s in vm.search_results],
        "has_more": vm.has_more,
    }


# ---------------------------
# Services
# ---------------------------
def _save_service(vm: ServiceCreateViewModel, session: ClientSession, payload: ServiceSaveRequest):
    vm.form_data = dict(vm.form_data, **payload.form)
    if payload.images or vm.is_editing:
        vm.media = list(payload.images)
    for upload in payload.uploads:
        vm.add_media(decode_upload(upload))
    service_id = vm.save_service(is_draft=payload.draft)
    check(vm, session, service_id)
    return {"id": service_id, "route": session.ctx.navigator.current, "toasts": toasts(session)}


@router.post("/services/create")
def create_service(payload: ServiceSaveRequest, session: ClientSession = Depends(get_session)):
    vm = ServiceCreateViewModel(session.ctx)
    return _save_service(vm, session, payload)


@router.put("/services/{service_id}")
def edit_service(service_id: str, payload: ServiceSaveRequest, session: ClientSession = Depends(get_session)):
    vm = ServiceCreateViewModel(session.ctx, service_id)
    vm.load()
    check(vm, session)
    return _save_service(vm, session, payload)


@router.get("/services/{service_id}")
def service_details(service_id: str, session: ClientSession = Depends(get_session)):
    vm = ServiceDetailViewModel(session.ctx, service_id)
    vm.load()
    check(vm, session)
    detail = presentation.service_detail(vm.service)
    detail["is_favorite"] = vm.is_favorite
    return {
        "service": detail,
        "professional": presentation.profile_header(vm.professional) if vm.professional is not None else None,
        "applications": [presentation.application_card(a) for a in vm.applications] if vm.is_owner else [],
        "user_application": (presentation.application_card(vm.user_application)
                             if vm.user_application is not None else None),
        "ratings": [r.to_wire() for r in vm.ratings],
        "is_owner": vm.is_owner,
        "can_apply": vm.can_apply,
        "has_applied": vm.has_applied,
        "can_edit": vm.can_edit,
        "can_delete": vm.can_delete,
    }


@router.delete("/services/{service_id}")
def delete_service(service_id: str, session: ClientSession = Depends(get_session)):
    vm = ServiceDetailViewModel(session.ctx, service_id)
    vm.load()
    check(vm, session)
    check(vm, session, vm.delete_service())
    return {"deleted": True}


@router.patch("/services/{service_id}/status")
def update_service_status(service_id: str, req: ServiceStatusUpdate, session: ClientSession = Depends(get_session)):
    vm = ServiceDetailViewModel(session.ctx, service_id)
    vm.load()
    check(vm, session)
    check(vm, session, vm.update_service_status(req.status))
    return presentation.service_card(vm.service, vm.is_favorite)


@router.post("/services/{service_id}/favorite")
def toggle_favorite(service_id: str, session: ClientSession = Depends(get_session)):
    session.ctx.service_store.toggle_favorite(service_id)
    return {"is_favorite": session.ctx.service_store.is_favorite(service_id)}


# ---------------------------
# Applications
# ---------------------------
@router.get("/applications")
def list_applications(status: Optional[List[str]] = Query(None), session: ClientSession = Depends(get_session)):
    vm = ApplicationListViewModel(session.ctx)
    try:
        vm.load()
        check(vm, session)
        if status:
            vm.set_status_filter(status)
        state = vm.state()
        return {
            "applications": [presentation.application_card(a) for a in state["applications"]],
            "filtered_status": state["filtered_status"],
            "active_count": state["active_count"],
            "pending_count": state["pending_count"],
        }
    finally:
        vm.close()


@router.post("/applications/create")
def create_application(payload: ApplicationCreateRequest, service_id: str = Query(..., alias="serviceId"),
                       session: ClientSession = Depends(get_session)):
    vm = ApplicationCreateViewModel(session.ctx, service_id)
    vm.load()
    check(vm, session)
    vm.set_message(payload.message)
    for photo in payload.photos:
        vm.add_photo(decode_upload(photo))
    application_id = vm.submit()
    check(vm, session, application_id)
    return {"id": application_id, "route": session.ctx.navigator.current, "toasts": toasts(session)}


def _application_payload(vm: ApplicationDetailViewModel, session: ClientSession) -> Dict[str, Any]:
    user_id = session.ctx.auth_store.user_id
    previous = None
    messages = []
    for message in vm.messages:
        messages.append(presentation.message_item(message, user_id, previous))
        previous = message
    return {
        "application": presentation.application_card(vm.application, vm.service),
        "model": presentation.profile_header(vm.model) if vm.model is not None else None,
        "professional": presentation.profile_header(vm.professional) if vm.professional is not None else None,
        "messages": messages,
        "can_accept": vm.can_accept,
        "can_reject": vm.can_reject,
        "can_complete": vm.can_complete,
        "can_cancel": vm.can_cancel,
        "can_rate": vm.can_rate,
        "has_rated": vm.has_rated,
    }


def _application_vm(application_id: str, session: ClientSession) -> ApplicationDetailViewModel:
    vm = ApplicationDetailViewModel(session.ctx, application_id)
    vm.load()
    if vm.failure is not None:
        vm.close()
        check(vm, session)
    return vm


@router.get("/applications/{application_id}")
def application_details(application_id: str, session: ClientSession = Depends(get_session)):
    with _application_vm(application_id, session) as vm:
        return _application_payload(vm, session)


APPLICATION_ACTIONS = {
    "accept": ApplicationDetailViewModel.accept_application,
    "complete": ApplicationDetailViewModel.complete_application,
    "cancel": ApplicationDetailViewModel.cancel_application,
}


@router.post("/applications/{application_id}/reject")
def reject_application(application_id: str, req: RejectRequest, session: ClientSession = Depends(get_session)):
    with _application_vm(application_id, session) as vm:
        check(vm, session, vm.reject_application(req.reason))
        return _application_payload(vm, session)


@router.post("/applications/{application_id}/rating")
def rate_application(application_id: str, req: RatingRequest, session: ClientSession = Depends(get_session)):
    with _application_vm(application_id, session) as vm:
        check(vm, session, vm.submit_rating(req.score, req.comment, req.is_public))
        return _application_payload(vm, session)


@router.post("/applications/{application_id}/{action}")
def move_application(application_id: str, action: str, session: ClientSession = Depends(get_session)):
    handler = APPLICATION_ACTIONS.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")
    with _application_vm(application_id, session) as vm:
        check(vm, session, handler(vm))
        return _application_payload(vm, session)


# ---------------------------
# Messages
# ---------------------------
@router.get("/messages")
def conversations(session: ClientSession = Depends(get_session)):
    with MessagingViewModel(session.ctx) as vm:
        vm.load()
        check(vm, session)
        return {
            "conversations": [presentation.conversation_row(c) for c in vm.conversations],
            "unread_count": vm.unread_count,
        }


def _conversation_vm(conversation_id: str, session: ClientSession) -> MessagingViewModel:
    vm = MessagingViewModel(session.ctx, conversation_id)
    vm.load()
    if vm.failure is not None:
        vm.close()
        check(vm, session)
    return vm


def _conversation_payload(vm: MessagingViewModel, session: ClientSession) -> Dict[str, Any]:
    user_id = session.ctx.auth_store.user_id
    previous = None
    messages = []
    for message in vm.messages:
        messages.append(presentation.message_item(message, user_id, previous))
        previous = message
    return {
        "conversation_id": vm.conversation_id,
        "partner": presentation.profile_header(vm.partner) if vm.partner is not None else None,
        "service": presentation.service_card(vm.service) if vm.service is not None else None,
        "messages": messages,
    }


@router.get("/messages/{conversation_id}")
def conversation(conversation_id: str, session: ClientSession = Depends(get_session)):
    with _conversation_vm(conversation_id, session) as vm:
        return _conversation_payload(vm, session)


@router.post("/messages/{conversation_id}")
def send_message(conversation_id: str, req: MessageRequest, session: ClientSession = Depends(get_session)):
    with _conversation_vm(conversation_id, session) as vm:
        if req.image is not None:
            ok = vm.send_image_message(decode_upload(req.image))
        elif req.latitude is not None and req.longitude is not None:
            ok = vm.send_location_message(req.address or "", req.latitude, req.longitude)
        else:
            ok = vm.send_text_message(req.text or "")
        check(vm, session, ok)
        return _conversation_payload(vm, session)


# ---------------------------
# Profile
# ---------------------------
def _profile_payload(vm: ProfileViewModel) -> Dict[str, Any]:
    return {
        "profile": presentation.profile_header(vm.profile),
        "ratings": [r.to_wire() for r in vm.ratings],
        "services": [presentation.service_card(s) for s in vm.services],
        "applications": [presentation.application_card(a) for a in vm.applications],
        "is_current_user_profile": vm.is_current_user_profile,
        "is_blocked": vm.is_blocked,
    }


@router.get("/profile")
def profile(user_id: Optional[str] = Query(None, alias="userId"), session: ClientSession = Depends(get_session)):
    with ProfileViewModel(session.ctx, user_id) as vm:
        vm.load()
        check(vm, session)
        return _profile_payload(vm)


@router.put("/profile/edit")
def edit_profile(payload: Dict[str, Any] = Body(...), session: ClientSession = Depends(get_session)):
    with ProfileViewModel(session.ctx) as vm:
        vm.load()
        check(vm, session)
        check(vm, session, vm.update_profile(payload))
        return _profile_payload(vm)


@router.post("/profile/edit/picture")
def edit_profile_picture(payload: Dict[str, str] = Body(...), session: ClientSession = Depends(get_session)):
    with ProfileViewModel(session.ctx) as vm:
        vm.load()
        check(vm, session)
        url = vm.update_profile_picture(decode_upload(payload.get("image", "")))
        check(vm, session, url)
        return {"url": url}


@router.post("/profile/settings/push-token")
def register_push_token(req: PushTokenRequest, session: ClientSession = Depends(get_session)):
    with ProfileViewModel(session.ctx) as vm:
        check(vm, session, vm.register_push_token(req.token))
        return {"registered": True}


@router.post("/profile/{user_id}/block")
def block_user(user_id: str, session: ClientSession = Depends(get_session)):
    with ProfileViewModel(session.ctx, user_id) as vm:
        check(vm, session, vm.block_user())
        return {"blocked": True}


@router.delete("/profile/{user_id}/block")
def unblock_user(user_id: str, session: ClientSession = Depends(get_session)):
    with ProfileViewModel(session.ctx, user_id) as vm:
        check(vm, session, vm.unblock_user())
        return {"blocked": False}


# ---------------------------
# App
# ---------------------------

def create_registry(settings: Settings) -> SessionRegistry:
    gateway = DocumentGateway(get_database(settings))
    storage = BlobStorage(settings.media_root, settings.media_url)
    return SessionRegistry(gateway, storage, IdentityProvider(gateway), max_sessions=settings.max_sessions)


def create_app(registry: Optional[SessionRegistry] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if registry is None:
        registry = create_registry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        watcher = registry.gateway.watch_changes() if settings.watch_changes else None
        try:
            yield
        finally:
            if watcher is not None:
                watcher.stop()
            registry.close_all()

    app = FastAPI(title="Modelo API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.registry = registry
    app.state.settings = settings
    app.include_router(router)
    app.mount(registry.storage.base_url, StaticFiles(directory=registry.storage.root), name="media")

    logger.info(f"Serving media from {registry.storage.root} at {registry.storage.base_url}")

    return app


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(settings=settings), host="0.0.0.0", port=settings.port)
