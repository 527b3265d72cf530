class WorkTallyError(Exception):
    """Base exception for all worktally errors."""
    pass

class RecoverableError(WorkTallyError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(WorkTallyError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in snapshot files, to just unknown data"""
    pass

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class ConfigError(RecoverableError):
    """ Settings are present but could not be parsed or validated """
    pass
