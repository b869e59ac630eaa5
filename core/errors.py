"""
RFPFlow Error Taxonomy

Every error the core raises derives from RFPFlowError and carries the HTTP
status the API layer renders it with.
"""

from typing import Any, List, Optional


class RFPFlowError(Exception):
    """Base class for all RFPFlow errors"""
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RFPFlowError):
    """A required field is missing or malformed"""
    status_code = 400


class NotFoundError(RFPFlowError):
    """An RFP, vendor or proposal id does not exist"""
    status_code = 404


class ConflictError(RFPFlowError):
    """A write violates a uniqueness or reference constraint"""
    status_code = 400


class OracleError(RFPFlowError):
    """The extraction model endpoint returned an error"""
    status_code = 502


class OracleUnavailableError(OracleError):
    """The extraction model endpoint could not be reached"""
    status_code = 503

    def __init__(self, base_url: str, model: str, detail: Optional[str] = None):
        message = (
            f"Cannot connect to the extraction model at {base_url}. "
            f"Make sure the model server is running (e.g. `ollama serve`) "
            f"and the model is available (`ollama pull {model}`)."
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.base_url = base_url
        self.model = model


class OracleResponseError(OracleError):
    """The model answered but the answer could not be used"""
    status_code = 500


class JSONRecoveryError(OracleResponseError):
    """No JSON object could be recovered from the model output"""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class SchemaValidationError(OracleResponseError):
    """Recovered JSON did not match the expected schema"""

    def __init__(self, schema: str, errors: List[Any]):
        summary = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}"
            for e in errors
        ) if errors else "invalid"
        super().__init__(f"Invalid {schema} response from extraction model: {summary}")
        self.schema = schema
        self.errors = errors


class MailboxError(RFPFlowError):
    """Mailbox transport failure (connect, login, select, search)"""
    status_code = 502
