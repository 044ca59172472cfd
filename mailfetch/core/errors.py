"""
Error kinds raised by the fetch pipeline.

Per-account errors never abort a batch: they are caught by the batch runner,
logged, and recorded in the invalid-accounts file.
"""
from typing import Optional


class MailFetchError(Exception):
    """Base class for all per-account fetch failures"""

    def __init__(self, message: str, email: Optional[str] = None):
        super().__init__(message)
        self.email = email

    @property
    def reason(self) -> str:
        return str(self)


class AuthenticationFailed(MailFetchError):
    """Credential rejected by the mail provider"""
    pass


class ProtocolMismatch(MailFetchError):
    """Provider rejected the token format for this protocol (switch Graph -> IMAP OAuth)"""
    pass


class TokenRefreshFailed(MailFetchError):
    """Token endpoint returned no access token, or the exchange could not run"""
    pass


class MailConnectionError(MailFetchError):
    """Network/transport failure while establishing or using an IMAP session"""
    pass


class GraphAPIError(MailFetchError):
    """Graph API answered with a non-success status"""

    def __init__(self, message: str, status_code: Optional[int] = None, email: Optional[str] = None):
        super().__init__(message, email=email)
        self.status_code = status_code


class ContentExtractionError(MailFetchError):
    """Message body could not be extracted"""
    pass


class FolderClosedError(ContentExtractionError):
    """The mailbox folder backing a message handle is no longer open"""
    pass


class AccountFileError(Exception):
    """Account store could not be read or has an unsupported format"""
    pass
