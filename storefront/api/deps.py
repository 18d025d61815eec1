# storefront/api/deps.py
from functools import lru_cache

from fastapi import Depends, HTTPException

from storefront.domain.errors import StorefrontError
from storefront.services.lock_service import LockService
from storefront.services.nets_client import NetsClient
from storefront.services.nets_service import NetsStatusPoller
from storefront.services.paypal_client import PayPalClient
from storefront.services.session_store import SessionStore


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore()


@lru_cache
def get_lock_service() -> LockService:
    return LockService()


@lru_cache
def get_paypal_client() -> PayPalClient:
    return PayPalClient()


@lru_cache
def get_nets_client() -> NetsClient:
    return NetsClient()


def get_nets_poller(nets: NetsClient = Depends(get_nets_client)) -> NetsStatusPoller:
    # one poller per stream, it carries the attempt count
    return NetsStatusPoller(nets)


async def close_clients() -> None:
    for factory in (get_paypal_client, get_nets_client):
        if factory.cache_info().currsize:
            await factory().aclose()
        factory.cache_clear()


def http_error(e: StorefrontError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())
