from fastapi import Request
from fastapi.templating import Jinja2Templates

from app.services import provider_factory
from app.services.blob_storage import BlobStorage
from app.services.document_store import DocumentStore
from app.services.identity_provider import IdentityProvider
from app.services.notification_service import Notifier
from app.services.page_state import Liveness


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_notifier(request: Request) -> Notifier:
    return request.state.notifier


def get_liveness(request: Request) -> Liveness:
    return Liveness.for_request(request)


def get_identity_provider() -> IdentityProvider:
    return provider_factory.get_identity_provider()


def get_document_store() -> DocumentStore:
    return provider_factory.get_document_store()


def get_blob_storage() -> BlobStorage:
    return provider_factory.get_blob_storage()
