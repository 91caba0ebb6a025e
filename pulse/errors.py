"""
errors.py

last updated: 2026-10-19

Error types reported in sync/snapshot results.
Core functions return these in an `errors` list instead of raising.
"""

WHOP_API_ERROR = "whop_api_error"
SUPABASE_FETCH_ERROR = "supabase_fetch_error"
SUPABASE_UPSERT_ERROR = "supabase_upsert_error"
SUPABASE_INSERT_ERROR = "supabase_insert_error"
UNEXPECTED_ERROR = "unexpected_error"


class WhopAPIError(Exception):
    """Raised by the Whop client when a request fails"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def make_error(error_type, exc_or_message, details=None):
    """
    Build a result error entry: {"type", "message", "details"}.
    """
    message = str(exc_or_message)
    if details is None and isinstance(exc_or_message, Exception):
        details = getattr(exc_or_message, "details", None) or repr(exc_or_message)
    return {"type": error_type, "message": message, "details": details}
