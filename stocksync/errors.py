class SyncError(Exception):
    """Base class for sync failures that abort a store run."""


class SyncCancelled(SyncError):
    pass


class StoreBusyError(SyncError):
    def __init__(self, store_id: str) -> None:
        super().__init__(f"A sync run is already active for store {store_id}")
        self.store_id = store_id


class UnknownStoreError(SyncError):
    def __init__(self, store_id: str) -> None:
        super().__init__(f"Unknown store: {store_id}")
        self.store_id = store_id


class ErpResponseError(SyncError):
    pass
