"""
User-Friendly Error Handling

Turns the exceptions that end a run into short messages with suggestions.
Technical details are only shown in verbose mode.
"""

import logging
import sqlite3
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.catalog import CatalogError
from ..core.ledger import LedgerError
from ..core.preflight import PreconditionError
from ..modules.cue_sheet import CueSheetError
from ..modules.organizer import TransferError


class ErrorCategory(Enum):
    """Categories of errors"""
    FILE_ACCESS = "file_access"
    CONFIGURATION = "configuration"
    PRECONDITION = "precondition"
    STORAGE = "storage"
    CATALOG = "catalog"
    USER_INPUT = "user_input"
    SYSTEM = "system"


@dataclass
class UserFriendlyError:
    """User-facing representation of an error"""
    category: ErrorCategory
    title: str
    message: str
    suggestions: List[str] = field(default_factory=list)
    technical_details: Optional[str] = None
    error_code: Optional[str] = None


ERROR_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "file_not_found": {
        "category": ErrorCategory.FILE_ACCESS,
        "title": "File not found",
        "message": "'{file_path}' does not exist.",
        "suggestions": [
            "Check the path for typos",
            "Use an absolute path",
        ],
    },
    "permission_denied": {
        "category": ErrorCategory.FILE_ACCESS,
        "title": "Permission denied",
        "message": "No permission to access '{file_path}'.",
        "suggestions": [
            "Check the permissions of the library and workspace directories",
            "Make sure no other program holds the file open",
        ],
    },
    "disk_full": {
        "category": ErrorCategory.STORAGE,
        "title": "Disk full",
        "message": "The target volume ran out of space.",
        "suggestions": [
            "Free space on the library volume and run again; finished placements are kept",
            "Use --transfer link to catalog without copying",
        ],
    },
    "precondition_failed": {
        "category": ErrorCategory.PRECONDITION,
        "title": "Cannot start",
        "message": "{details}",
        "suggestions": [
            "Fix the listed problems; nothing was modified",
        ],
    },
    "catalog_error": {
        "category": ErrorCategory.CATALOG,
        "title": "Catalog error",
        "message": "The catalog could not be updated: {details}",
        "suggestions": [
            "Run again; placements recorded in the ledger will be recovered",
            "Make sure no other instance uses the same workspace",
        ],
    },
    "ledger_error": {
        "category": ErrorCategory.STORAGE,
        "title": "Ledger write failed",
        "message": "{details}",
        "suggestions": [
            "Check free space and permissions of the workspace directory",
        ],
    },
    "transfer_error": {
        "category": ErrorCategory.FILE_ACCESS,
        "title": "Transfer failed",
        "message": "{details}",
        "suggestions": [
            "Check that the library directory is writable",
        ],
    },
    "cue_sheet_error": {
        "category": ErrorCategory.USER_INPUT,
        "title": "Invalid cut sheet",
        "message": "{details}",
        "suggestions": [
            "Timestamps must be MM:SS:FF with seconds below 60 and frames below 75",
        ],
    },
    "config_invalid": {
        "category": ErrorCategory.CONFIGURATION,
        "title": "Invalid configuration",
        "message": "The configuration contains invalid values: {issues}",
        "suggestions": [
            "Check the configuration file",
            "Run with the default configuration",
        ],
    },
    "invalid_option": {
        "category": ErrorCategory.USER_INPUT,
        "title": "Invalid option",
        "message": "{details}",
        "suggestions": [
            "Use --help to list valid values",
        ],
    },
    "system_error": {
        "category": ErrorCategory.SYSTEM,
        "title": "Unexpected error",
        "message": "An unexpected error occurred: {details}",
        "suggestions": [
            "Run again with --log-level DEBUG and check the log file",
        ],
    },
}


class ErrorHandler:
    """Classifies exceptions and formats them for the console"""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def handle_exception(self, exception: BaseException,
                         context: Optional[Dict[str, Any]] = None) -> UserFriendlyError:
        context = dict(context or {})
        context.setdefault('details', str(exception))
        context.setdefault('file_path', getattr(exception, 'filename', None) or "unknown")

        error_key = self._classify_exception(exception, context)
        template = ERROR_TEMPLATES[error_key]

        try:
            message = template["message"].format(**context)
        except (KeyError, ValueError):
            message = template["message"]

        technical_details = None
        if self.verbose:
            technical_details = "".join(traceback.format_exception(
                type(exception), exception, exception.__traceback__))

        return UserFriendlyError(
            category=template["category"],
            title=template["title"],
            message=message,
            suggestions=list(template["suggestions"]),
            technical_details=technical_details,
            error_code=error_key,
        )

    def _classify_exception(self, exception: BaseException, context: Dict[str, Any]) -> str:
        if isinstance(exception, PreconditionError):
            return "precondition_failed"
        if isinstance(exception, (CatalogError, sqlite3.Error)):
            return "catalog_error"
        if isinstance(exception, LedgerError):
            return "ledger_error"
        if isinstance(exception, TransferError):
            return "transfer_error"
        if isinstance(exception, CueSheetError):
            return "cue_sheet_error"
        if isinstance(exception, FileNotFoundError):
            return "file_not_found"
        if isinstance(exception, PermissionError):
            return "permission_denied"
        if isinstance(exception, OSError) and "No space left on device" in str(exception):
            return "disk_full"
        if isinstance(exception, ValueError):
            if context.get("config_validation"):
                return "config_invalid"
            if context.get("user_input"):
                return "invalid_option"
        return "system_error"

    def format_error_message(self, error: UserFriendlyError, show_suggestions: bool = True) -> str:
        lines = [f"❌ {error.title}", f"   {error.message}", ""]

        if show_suggestions and error.suggestions:
            lines.append("💡 Suggestions:")
            lines.extend(f"   • {suggestion}" for suggestion in error.suggestions)
            lines.append("")

        if self.verbose and error.technical_details:
            lines.append("🔧 Technical details:")
            lines.extend(f"   {line}" for line in error.technical_details.splitlines() if line.strip())
            lines.append("")

        if error.error_code:
            lines.append(f"🔍 Error code: {error.error_code}")

        return "\n".join(lines)

    def log_error(self, error: UserFriendlyError):
        if error.category in (ErrorCategory.USER_INPUT, ErrorCategory.CONFIGURATION):
            self.logger.warning(f"User error: {error.title} - {error.message}")
        else:
            self.logger.error(f"{error.title}: {error.message}")

        if error.technical_details:
            self.logger.debug(f"Technical details: {error.technical_details}")


def handle_user_error(exception: BaseException, context: Optional[Dict[str, Any]] = None,
                      verbose: bool = False) -> str:
    """Classify, log and format an exception in one call"""
    handler = ErrorHandler(verbose=verbose)
    error = handler.handle_exception(exception, context)
    handler.log_error(error)
    return handler.format_error_message(error)
