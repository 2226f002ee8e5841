"""Domain-specific exceptions"""

from typing import List


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NoTransactionsError(DomainException):
    """No transactions available to analyze"""

    pass


class InferenceError(DomainException):
    """Merchant inference failed for a single context"""

    pass


class InferenceParseError(InferenceError):
    """
    Reasoning response could not be turned into a merchant inference.

    Attributes:
        stage: Which step failed ("json_parse" or "schema")
        errors: Human-readable error descriptions
        raw_response: The original response text
    """

    def __init__(self, stage: str, errors: List[str], raw_response: str):
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        super().__init__(f"Inference response invalid at stage '{stage}': " + "; ".join(errors))


class ReasoningServiceError(InferenceError):
    """Reasoning service returned an error or is unavailable"""

    pass


class DiscoveryNotFoundError(DomainException):
    """Referenced merchant discovery does not exist"""

    pass


class DiscoveryAlreadyValidatedError(DomainException):
    """Discovery already reached a terminal status"""

    pass


class DiscoveryRunError(DomainException):
    """Discovery workflow ended in the error state"""

    pass
