from typing import Optional


class FitlogError(Exception):
    """Base class for failures the API layer translates into error responses."""


class ConfigurationError(FitlogError):
    """A required external credential or setting is absent."""


class NotFoundError(FitlogError):
    pass


class UpstreamFailure(FitlogError):
    """An LLM call or data-store operation failed or returned invalid data."""


class LLMRequestError(UpstreamFailure):
    def __init__(self, provider: str, model: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


class ExtractionError(UpstreamFailure):
    pass


class PlanGenerationError(UpstreamFailure):
    pass


class RecordStoreError(UpstreamFailure):
    pass
