"""
Account model and authentication modes.

Account records come from loosely formatted files, so field lookup accepts
several key spellings (exact, snake_case, lowercase, PascalCase).
"""
from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Any, Dict, Optional
import logging
import re

from pydantic import BaseModel, model_validator

logger = logging.getLogger(__name__)

# Keys written back to the account store
REFRESH_TOKEN_KEY = "refreshToken"
ACCESS_TOKEN_KEY = "accessToken"
EXPIRES_KEY = "expiresIn"
TYPE_KEY = "type"


class AuthMode(str, Enum):
    """Which protocol/credential an account currently uses"""
    GRAPH = "GRAPH"
    IMAP_OAUTH = "IMAP_OAUTH"
    IMAP_BASIC = "IMAP_BASIC"

    @property
    def is_imap(self) -> bool:
        return self is not AuthMode.GRAPH


def to_snake_case(key: str) -> str:
    return re.sub(r"([a-z])([A-Z])", r"\1_\2", key).lower()


def candidate_keys(key: str) -> list:
    """Spellings tried for a camelCase key, in lookup order"""
    candidates = [key, to_snake_case(key), key.lower(), key[:1].upper() + key[1:]]
    # Drop repeats while keeping order
    return list(dict.fromkeys(candidates))


def find_key(record: Dict[str, Any], key: str) -> Optional[str]:
    """Return the spelling of key actually present in record, if any"""
    for candidate in candidate_keys(key):
        if candidate in record:
            return candidate
    return None


def lookup_key(record: Dict[str, Any], key: str, default: Any = None) -> Any:
    """
    Look up a camelCase key across naming conventions.

    Args:
        record: Parsed account record
        key: camelCase key (e.g. "refreshToken")
        default: Value returned when no spelling is present or the value is null

    Returns:
        First non-null value found, or default
    """
    for candidate in candidate_keys(key):
        value = record.get(candidate)
        if value is not None:
            return value
    return default


class Account(BaseModel):
    """An email account with its authentication state"""
    email: str
    password: Optional[str] = None
    client_id: Optional[str] = None
    refresh_token: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    mode: AuthMode = AuthMode.GRAPH

    @model_validator(mode="after")
    def _password_flow_without_refresh_token(self):
        if not self.refresh_token:
            self.mode = AuthMode.IMAP_BASIC
        return self

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Account":
        """
        Build an account from a parsed store record.

        Raises:
            ValueError: If the record has no email or an unknown type
        """
        email = lookup_key(record, "email")
        if not email:
            raise ValueError("account record has no email")

        expires_ms = lookup_key(record, EXPIRES_KEY, 0) or 0
        expires_at = None
        if expires_ms:
            expires_at = datetime.fromtimestamp(float(expires_ms) / 1000, tz=timezone.utc)

        return cls(
            email=str(email),
            password=lookup_key(record, "password"),
            client_id=lookup_key(record, "clientId"),
            refresh_token=lookup_key(record, REFRESH_TOKEN_KEY),
            access_token=lookup_key(record, ACCESS_TOKEN_KEY),
            expires_at=expires_at,
            mode=AuthMode(str(lookup_key(record, TYPE_KEY, AuthMode.GRAPH.value)).upper()),
        )

    def has_valid_access_token(self, now: Optional[datetime] = None) -> bool:
        """Password accounts are always valid; OAuth accounts need an unexpired token"""
        if self.mode is AuthMode.IMAP_BASIC:
            return True
        now = now or datetime.now(timezone.utc)
        return self.access_token is not None and self.expires_at is not None and self.expires_at > now

    def update_tokens(self,
                      access_token: str,
                      expires_in: float,
                      mode: AuthMode,
                      refresh_token: Optional[str] = None,
                      now: Optional[datetime] = None):
        """
        Store a refreshed access token.

        Args:
            access_token: New access token
            expires_in: Lifetime in seconds, counted from now
            mode: Protocol derived from the granted scope
            refresh_token: Rotated refresh token, if the provider returned one
            now: Reference time (defaults to current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        self.access_token = access_token
        self.expires_at = now + timedelta(seconds=expires_in)
        if refresh_token:
            self.refresh_token = refresh_token
        if self.refresh_token:
            self.mode = mode

    def demote(self, mode: AuthMode):
        """Switch to a fallback protocol (GRAPH -> IMAP_OAUTH only)"""
        if self.mode is AuthMode.GRAPH and mode is AuthMode.IMAP_OAUTH:
            logger.info(f"{self.email}: switching protocol {self.mode.value} -> {mode.value}")
            self.mode = mode
        else:
            logger.debug(f"{self.email}: ignoring demotion {self.mode.value} -> {mode.value}")

    @property
    def credential(self) -> Optional[str]:
        """Secret used for IMAP login in the current mode"""
        if self.mode is AuthMode.IMAP_BASIC:
            return self.password
        return self.access_token

    @property
    def expires_at_ms(self) -> int:
        if self.expires_at is None:
            return 0
        return int(self.expires_at.timestamp() * 1000)

    def apply_to_record(self, record: Dict[str, Any]):
        """Write token state into a store record, keeping the record's key spellings"""
        if self.access_token is None:
            return
        updates = {
            REFRESH_TOKEN_KEY: self.refresh_token,
            ACCESS_TOKEN_KEY: self.access_token,
            EXPIRES_KEY: self.expires_at_ms,
            TYPE_KEY: self.mode.value,
        }
        for key, value in updates.items():
            record[find_key(record, key) or key] = value

    def to_record(self) -> Dict[str, Any]:
        return {
            "clientId": self.client_id,
            "email": self.email,
            "password": self.password,
            REFRESH_TOKEN_KEY: self.refresh_token,
            ACCESS_TOKEN_KEY: self.access_token,
            EXPIRES_KEY: self.expires_at_ms,
            TYPE_KEY: self.mode.value,
        }

    def __str__(self) -> str:
        return self.email
