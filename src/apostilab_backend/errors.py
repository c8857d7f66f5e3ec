"""Domain exceptions raised by the stores and services.

Routes translate these into HTTP responses; nothing below the route layer
knows about status codes.
"""


class ApostilabError(Exception):
    """Base class for all expected application errors."""


class InvalidInputError(ApostilabError):
    pass


class InvalidCredentialsError(ApostilabError):
    pass


class InvalidTokenError(ApostilabError):
    pass


class EmailAlreadyRegisteredError(ApostilabError):
    pass


class UserNotFoundError(ApostilabError):
    pass


class ApostilaNotFoundError(ApostilabError):
    pass


class ApostilaAlreadyExistsError(ApostilabError):
    pass


class PdfRenderError(ApostilabError):
    pass


class EmptyPdfError(PdfRenderError):
    """The page rendered without any visible body text."""
