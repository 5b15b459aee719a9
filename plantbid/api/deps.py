from fastapi import Depends
from sqlmodel import Session

from plantbid.core.config import settings
from plantbid.core.database import get_db
from plantbid.services.cancellation import PaymentCanceller
from plantbid.services.portone_client import PortOneClient, get_portone_client
from plantbid.services.reconciliation import PaymentReconciler
from plantbid.services.storage import PaymentStorage
from plantbid.services.webhook import PaymentWebhookHandler


def get_storage(db: Session = Depends(get_db)) -> PaymentStorage:
    return PaymentStorage(db)


def get_gateway_client() -> PortOneClient:
    """Testlerde dependency_overrides ile sahte istemci verilir."""
    return get_portone_client()


def get_reconciler(
    storage: PaymentStorage = Depends(get_storage),
    client: PortOneClient = Depends(get_gateway_client),
) -> PaymentReconciler:
    return PaymentReconciler(storage, client)


def get_canceller(
    storage: PaymentStorage = Depends(get_storage),
    client: PortOneClient = Depends(get_gateway_client),
) -> PaymentCanceller:
    return PaymentCanceller(storage, client)


def get_webhook_handler(
    storage: PaymentStorage = Depends(get_storage),
    client: PortOneClient = Depends(get_gateway_client),
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> PaymentWebhookHandler:
    return PaymentWebhookHandler(storage, client, reconciler, secret=settings.portone_webhook_secret)
