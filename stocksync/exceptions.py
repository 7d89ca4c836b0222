class SyncError(Exception):
    """Base exception for inventory sync failures."""
    pass

class TargetUnavailableError(SyncError):
    """Raised when the commerce store cannot be read during key loading."""
    pass

class SourceUnavailableError(SyncError):
    """Raised when the ERP source query fails."""
    pass

class SyncAlreadyRunningError(SyncError):
    """Raised when a run is requested while another one is in progress."""
    pass
