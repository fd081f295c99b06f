class FormBridgeError(Exception):
    """Base exception for formbridge errors."""
    pass


class ConfigurationError(FormBridgeError):
    """Missing or invalid configuration (token, storage target, credentials)."""
    pass


class ApiError(FormBridgeError):
    """Non-200 response from the survey provider."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API Error: {status_code} - {body}")


class ProcessingError(FormBridgeError):
    """A response record could not be turned into a row."""
    pass


class StorageError(FormBridgeError):
    """Spreadsheet host read/write failure."""
    pass


class RetryExhaustedError(FormBridgeError):
    def __init__(self, form_id: str, attempts: int, last_error: Exception):
        self.form_id = form_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed to process survey {form_id} after {attempts} attempts: {last_error}")
