"""
Custom exceptions for the habit engine.
Provides specific exception types for better error handling and recovery.
"""


class HabitEngineException(Exception):
    """Base exception for the habit engine"""
    pass


class InvalidInputException(HabitEngineException):
    """Raised when caller-supplied configuration is malformed"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class DataUnavailableException(HabitEngineException):
    """Raised when the session store or preference source fails"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Data source {operation} failed: {details}")


class CacheFailureException(HabitEngineException):
    """Raised when a cache backend read or write fails"""
    def __init__(self, operation: str, key: str, details: str):
        self.operation = operation
        self.key = key
        super().__init__(f"Cache {operation} failed for {key}: {details}")
