class SyncError(Exception):
    pass


class SliceStoreError(SyncError):
    pass


class PrimaryWriteUnavailableError(SliceStoreError):
    pass


class UnsupportedSliceOperationError(SyncError):
    pass
