class ApplicationError(Exception):
    pass


class DecodeEnvelopeError(ApplicationError):
    """The request body is not an admission review."""


class DecodePodError(ApplicationError):
    """The object in the admission request is not a pod."""
