#!/usr/bin/env python3
"""
Dead Drop Error Hierarchy
Canonical exception classes for export and import operations.
"""

from enum import Enum

class ErrorCode(Enum):
    UNKNOWN = "UNKNOWN_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    IO_ERROR = "IO_ERROR"
    STATEMENT_ERROR = "STATEMENT_ERROR"
    TRANSACTION_ERROR = "TRANSACTION_ERROR"
    GENERATOR_ERROR = "GENERATOR_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"

class DeadDropError(Exception):
    """Base class for all Dead Drop exceptions"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

class ConfigurationError(DeadDropError):
    """Raised when a table or connection is missing, disabled or malformed"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)

class SourceNotFoundError(DeadDropError):
    """Raised when an import file or cloud object does not exist"""
    def __init__(self, message: str, path: str = None):
        super().__init__(message, ErrorCode.NOT_FOUND, {'path': path})

class ExportIOError(DeadDropError):
    """Raised when an export file cannot be opened or written"""
    def __init__(self, message: str, path: str = None):
        super().__init__(message, ErrorCode.IO_ERROR, {'path': path})

class StatementExecutionError(DeadDropError):
    """A single import statement failed; recorded, never fatal"""
    def __init__(self, message: str, statement: str = ""):
        super().__init__(message, ErrorCode.STATEMENT_ERROR, {'statement': statement})
        self.statement = statement

class TransactionError(DeadDropError):
    """Raised when an import transaction cannot be committed"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.TRANSACTION_ERROR, details)

class GeneratorError(DeadDropError):
    """Raised by a fake-data generator; callers substitute a placeholder"""
    def __init__(self, message: str, method: str = None):
        super().__init__(message, ErrorCode.GENERATOR_ERROR, {'method': method})

class StorageError(DeadDropError):
    """Raised when a cloud disk operation fails"""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ErrorCode.STORAGE_ERROR, details)
