class NotetakerError(Exception):
    pass


class InputValidationError(NotetakerError):
    """Missing or empty required input; rejected before any write."""
    pass


class StorageUnavailable(NotetakerError):
    """The backing store could not be reached. Never retried automatically."""
    pass


class VisitNotFound(NotetakerError):
    pass


class SynthesisError(NotetakerError):
    pass


class SynthesisUnavailable(SynthesisError):
    """Network error, timeout, or non-2xx reply from the generative-text service."""
    pass


class SynthesisMalformed(SynthesisError):
    """2xx reply whose body is not a JSON object."""
    pass
