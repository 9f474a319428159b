"""
Custom exceptions for the sitesync package.
"""


class SyncError(Exception):
    """Base exception for all sitesync errors."""
    pass


class ConfigError(SyncError):
    """
    Error in sitesync configuration.
    
    Raised when:
    - Configuration file is missing or unreadable
    - Configuration values are out of valid range
    """
    pass


class RecordValidationError(SyncError):
    """
    A content record or document failed validation.
    
    Raised when:
    - Required fields are missing or empty
    - Field types do not match the expected shape
    """
    
    def __init__(self, message: str, field_name: str = None):
        super().__init__(message)
        self.field_name = field_name


class UnsafePathError(SyncError):
    """A path contains traversal sequences or disallowed characters."""
    
    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class AuthorizationError(SyncError):
    """
    The caller may not perform the requested action.
    
    Raised when:
    - The anti-forgery token is missing, expired or for another action
    - The user lacks the required capability
    """
    
    def __init__(self, message: str, action: str = None):
        super().__init__(message)
        self.action = action


class OperationDisabledError(SyncError):
    """Mutating operations are disabled in this environment."""
    pass


class DatabaseError(SyncError):
    """
    Error talking to the site database.
    
    Raised when:
    - The connection cannot be established
    - The connected user cannot write
    """
    pass


class StrategyError(DatabaseError):
    """A single dump/restore strategy failed."""
    
    def __init__(self, message: str, strategy: str = None, output: str = None):
        super().__init__(message)
        self.strategy = strategy
        self.output = output


class ArchiveError(SyncError):
    """Error creating or extracting a plugin archive."""
    pass
