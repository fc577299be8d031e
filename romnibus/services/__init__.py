"""Service layer: signature parsing, hashing, storage and acquisition."""

from .catalog_builder import CatalogBuilder, discover_signature_files, parser_for_path
from .catalog_store import CatalogStore
from .config import ConfigurationService, ValidationResult
from .dat_parser import DatSignatureParser
from .errors import (
    AppError,
    ArchiveError,
    ArchiveOpenError,
    ConfigurationError,
    EmptyArchiveError,
    EntryOpenError,
    ErrorCategory,
    ErrorHandlingService,
    ErrorSeverity,
    FileOpenError,
    FileSystemError,
    NetworkError,
    ParseError,
    PersistenceError,
    StoreError,
    StoreUninitializedError,
    UnsupportedLookupError,
    UserFriendlyError,
    ValidationError,
    get_error_service,
    handle_error,
)
from .hasher import HashService
from .http_client import HttpClientService
from .json_parser import JsonSignatureParser
from .signature_parser import SignatureParser, platform_from_filename
from .source_fetcher import SourceFetcherService

__all__ = [
    "AppError",
    "ArchiveError",
    "ArchiveOpenError",
    "CatalogBuilder",
    "CatalogStore",
    "ConfigurationError",
    "ConfigurationService",
    "DatSignatureParser",
    "EmptyArchiveError",
    "EntryOpenError",
    "ErrorCategory",
    "ErrorHandlingService",
    "ErrorSeverity",
    "FileOpenError",
    "FileSystemError",
    "HashService",
    "HttpClientService",
    "JsonSignatureParser",
    "NetworkError",
    "ParseError",
    "PersistenceError",
    "SignatureParser",
    "SourceFetcherService",
    "StoreError",
    "StoreUninitializedError",
    "UnsupportedLookupError",
    "UserFriendlyError",
    "ValidationError",
    "ValidationResult",
    "discover_signature_files",
    "get_error_service",
    "handle_error",
    "parser_for_path",
    "platform_from_filename",
]
