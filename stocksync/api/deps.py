import secrets

from fastapi import Header

from stocksync.api.errors import unauthorized
from stocksync.config import FileStoreSettingsProvider, StoreSettingsProvider, SyncSettings, get_settings
from stocksync.pipeline import ClientFactory, live_client_factory


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    expected = get_settings().admin_token
    if not x_admin_token or not secrets.compare_digest(x_admin_token.encode(), expected.encode()):
        raise unauthorized()


def get_sync_settings() -> SyncSettings:
    return get_settings()


def get_store_provider() -> StoreSettingsProvider:
    return FileStoreSettingsProvider(get_settings().stores_file)


def get_client_factory() -> ClientFactory:
    return live_client_factory(get_settings())
