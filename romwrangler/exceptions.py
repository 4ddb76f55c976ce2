#!/usr/bin/env python3
# -*-coding: utf-8-*-
"""
ROM Wrangler - Consolidated Exception Classes

All project-specific exceptions live here so every phase of the pipeline
reports failures with the same shape (error code, message, details).
"""

from datetime import datetime
from typing import Dict, Any, Optional


class BaseError(Exception):
    """Base class for all project-specific errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.error_code = error_code or "ERROR"
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Converts the exception to a dictionary for structured logging."""
        return {
            'error_code': self.error_code,
            'message': str(self),
            'details': self.details,
            'timestamp': self.timestamp.isoformat()
        }


# =====================================================================================================
# Security-related errors
# =====================================================================================================

class SecurityError(BaseError):
    """Base class for security-related errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code or "SECURITY_ERROR", details)


class ZipSlipError(SecurityError):
    """Raised when an archive entry would be written outside its destination."""

    def __init__(self, message: str, entry: Optional[str] = None,
                 base: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        slip_details = details or {}
        if entry:
            slip_details['entry'] = str(entry)
        if base:
            slip_details['base'] = str(base)
        super().__init__(message, "ZIP_SLIP", slip_details)


# =====================================================================================================
# Configuration-related errors
# =====================================================================================================

class ConfigurationError(BaseError):
    """Base class for configuration errors."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        config_details = details or {}
        if file_path:
            config_details['file_path'] = file_path
        super().__init__(message, error_code or "CONFIG_ERROR", config_details)


class ToolNotFoundError(ConfigurationError):
    """Raised when a required external tool cannot be located."""

    def __init__(self, message: str, tool: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        tool_details = details or {}
        if tool:
            tool_details['tool'] = tool
        super().__init__(message, "TOOL_NOT_FOUND", None, tool_details)


# =====================================================================================================
# IO and data-related errors
# =====================================================================================================

class ScannerError(BaseError):
    """Raised when a source directory cannot be scanned."""

    def __init__(self, message: str, file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        scanner_details = details or {}
        if file_path:
            scanner_details['file_path'] = str(file_path)
        super().__init__(message, "SCANNER_ERROR", scanner_details)


class FileOperationError(BaseError):
    """Raised when a move, copy, mkdir or write fails."""

    def __init__(self, message: str, file_path: Optional[str] = None,
                 operation: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        file_details = details or {}
        if file_path:
            file_details['file_path'] = str(file_path)
        if operation:
            file_details['operation'] = operation
        super().__init__(message, "FILE_OP_ERROR", file_details)


# =====================================================================================================
# Processing errors
# =====================================================================================================

class ProcessingError(BaseError):
    """Base class for errors while transforming a single file."""

    def __init__(self, message: str, error_code: Optional[str] = None,
                 rom_path: Optional[str] = None,
                 phase: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        proc_details = details or {}
        if rom_path:
            proc_details['rom_path'] = str(rom_path)
        if phase:
            proc_details['phase'] = phase
        super().__init__(message, error_code or "PROCESSING_ERROR", proc_details)


class EcmFormatError(ProcessingError):
    """Raised when an ECM stream is malformed or truncated."""

    def __init__(self, message: str, rom_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ECM_FORMAT_ERROR", rom_path, "ecm", details)


class SheetParseError(ProcessingError):
    """Raised when a GDI or CUE sheet cannot be read."""

    def __init__(self, message: str, rom_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SHEET_PARSE_ERROR", rom_path, "sheet", details)


class ArchiveError(ProcessingError):
    """Raised when an archive cannot be listed or extracted."""

    def __init__(self, message: str, rom_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ARCHIVE_ERROR", rom_path, "extract", details)


class ConversionError(ProcessingError):
    """Raised when the disc-image compressor fails for one input."""

    def __init__(self, message: str, rom_path: Optional[str] = None,
                 exit_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        conv_details = details or {}
        if exit_code is not None:
            conv_details['exit_code'] = exit_code
        super().__init__(message, "CONVERSION_ERROR", rom_path, "convert", conv_details)


class OperationCancelledError(BaseError):
    """Raised when a cancel token fires during a long-running operation."""

    def __init__(self, message: str = "Operation cancelled",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CANCELLED", details)
