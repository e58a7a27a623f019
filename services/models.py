"""
Data Model for SAS Issuance

Value types shared by the container, policy and token services: container
references, permission sets, validity windows, stored access policies and the
tokens/results handed back to callers.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Union
from urllib.parse import parse_qs

from azure.storage.blob import AccessPolicy, ContainerSasPermissions

from services.errors import ValidationError

# Permission name -> SAS letter. Canonical output order follows the SDK: r a c w d l
PERMISSION_LETTERS = {
    "read": "r",
    "add": "a",
    "create": "c",
    "write": "w",
    "delete": "d",
    "list": "l",
}
_LETTER_TO_NAME = {letter: name for name, letter in PERMISSION_LETTERS.items()}

MAX_POLICY_ID_LENGTH = 64
MAX_STORED_POLICIES = 5

_CONTAINER_NAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9]|-(?=[a-z0-9])){0,62}$")
_POLICY_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")

STORED_POLICY_MODE = "stored-policy"
AD_HOC_MODE = "ad-hoc"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_service_time(value: Union[datetime, str, None]) -> Optional[datetime]:
    """
    Parse a timestamp returned by the Blob service.

    Service timestamps carry up to seven fractional digits; they are
    truncated to whole seconds.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S").replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ContainerRef:
    """A storage container, identified by name within the account."""

    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or not _CONTAINER_NAME_RE.match(self.name):
            raise ValidationError(
                f"Invalid container name {self.name!r}: use up to 63 lowercase letters, "
                "digits or single hyphens, starting and ending with a letter or digit"
            )

    def __str__(self) -> str:
        return self.name


class PermissionSet(frozenset):
    """Immutable set of permission names drawn from ``PERMISSION_LETTERS``."""

    @classmethod
    def full(cls) -> "PermissionSet":
        return cls(PERMISSION_LETTERS)

    def __str__(self) -> str:
        return "".join(letter for name, letter in PERMISSION_LETTERS.items() if name in self)

    def __repr__(self) -> str:
        return f"PermissionSet({str(self)!r})"

    def to_sas_permissions(self) -> ContainerSasPermissions:
        return ContainerSasPermissions(**{name: True for name in self})


def parse_permissions(value: Union[str, Iterable[str], PermissionSet]) -> PermissionSet:
    """
    Build a PermissionSet from SAS letters ("rwldac") or permission names.

    Args:
        value: A letter string, an iterable of names, or an existing PermissionSet

    Returns:
        The validated, non-empty PermissionSet

    Raises:
        ValidationError: On unknown letters/names or an empty set
    """
    if isinstance(value, PermissionSet):
        permissions = value
    elif isinstance(value, str):
        unknown = sorted(set(value) - set(_LETTER_TO_NAME))
        if unknown:
            raise ValidationError(f"Unknown permission letters: {''.join(unknown)}")
        permissions = PermissionSet(_LETTER_TO_NAME[letter] for letter in value)
    else:
        names = [str(name).lower() for name in value]
        unknown = sorted(set(names) - set(PERMISSION_LETTERS))
        if unknown:
            raise ValidationError(f"Unknown permissions: {', '.join(unknown)}")
        permissions = PermissionSet(names)

    if not permissions:
        raise ValidationError("Permission set must not be empty")
    return permissions


def permissions_from_service(value: Optional[str]) -> PermissionSet:
    """
    Read a permission string returned by the service.

    Letters outside ``PERMISSION_LETTERS`` (tag, filter, move, ...) may be set
    by other tools; they are dropped instead of rejected.
    """
    return PermissionSet(_LETTER_TO_NAME[letter] for letter in str(value or "") if letter in _LETTER_TO_NAME)


def validate_policy_id(policy_id: str) -> str:
    if not policy_id or not isinstance(policy_id, str):
        raise ValidationError("Policy identifier must be a non-empty string")
    if len(policy_id) > MAX_POLICY_ID_LENGTH:
        raise ValidationError(
            f"Policy identifier {policy_id!r} exceeds {MAX_POLICY_ID_LENGTH} characters"
        )
    if not _POLICY_ID_RE.match(policy_id):
        raise ValidationError(f"Policy identifier {policy_id!r} contains invalid characters")
    return policy_id


@dataclass(frozen=True)
class PolicyWindow:
    """
    Half-open validity window [starts_on, expires_on) in UTC.

    Either end may be None for policies read back from the service, where the
    SAS itself supplies the missing bound. Windows written by this service
    always have both ends (see ``validate``).
    """

    starts_on: Optional[datetime]
    expires_on: Optional[datetime]

    def __post_init__(self):
        if self.starts_on is not None:
            object.__setattr__(self, "starts_on", as_utc(self.starts_on))
        if self.expires_on is not None:
            object.__setattr__(self, "expires_on", as_utc(self.expires_on))
        if self.is_complete and self.expires_on <= self.starts_on:
            raise ValidationError(
                f"Policy window expires at {self.expires_on.isoformat()}, "
                f"not after its start {self.starts_on.isoformat()}"
            )

    @classmethod
    def starting_now(cls, duration: timedelta = timedelta(hours=1), now: Optional[datetime] = None) -> "PolicyWindow":
        start = as_utc(now) if now is not None else utc_now()
        return cls(starts_on=start, expires_on=start + duration)

    @property
    def is_complete(self) -> bool:
        return self.starts_on is not None and self.expires_on is not None

    @property
    def duration(self) -> Optional[timedelta]:
        if not self.is_complete:
            return None
        return self.expires_on - self.starts_on

    def validate(self, now: Optional[datetime] = None) -> "PolicyWindow":
        """Check the window can be written: both ends set and not yet expired."""
        if not self.is_complete:
            raise ValidationError("Policy window needs both a start and an expiry")
        now = as_utc(now) if now is not None else utc_now()
        if self.expires_on <= now:
            raise ValidationError(
                f"Policy window already expired at {self.expires_on.isoformat()}"
            )
        return self


@dataclass(frozen=True)
class StoredAccessPolicy:
    """
    A named, server-side access policy as stored on a container.

    ``raw_permission`` keeps the permission string exactly as the service
    returned it, including letters this service does not issue.
    """

    policy_id: str
    window: PolicyWindow
    permissions: PermissionSet
    raw_permission: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        validate_policy_id(self.policy_id)
        if not isinstance(self.permissions, PermissionSet):
            object.__setattr__(self, "permissions", parse_permissions(self.permissions))

    def to_access_policy(self) -> AccessPolicy:
        permission = self.raw_permission
        if permission is None:
            permission = self.permissions.to_sas_permissions()
        return AccessPolicy(
            permission=permission,
            expiry=self.window.expires_on,
            start=self.window.starts_on,
        )

    @classmethod
    def from_signed_identifier(cls, signed_identifier) -> "StoredAccessPolicy":
        """Rebuild a policy from a ``SignedIdentifier`` returned by the service."""
        policy = signed_identifier.access_policy
        raw_permission = str(policy.permission) if policy.permission is not None else None
        return cls(
            policy_id=signed_identifier.id,
            window=PolicyWindow(
                starts_on=parse_service_time(policy.start),
                expires_on=parse_service_time(policy.expiry),
            ),
            permissions=permissions_from_service(raw_permission),
            raw_permission=raw_permission,
        )


@dataclass(frozen=True)
class PolicyMetadata:
    """Outcome of a policy-set operation, as reported by the service."""

    policy_id: str
    window: PolicyWindow
    permissions: PermissionSet
    last_modified: Optional[datetime]
    etag: Optional[str] = None


@dataclass(frozen=True)
class AccessToken:
    """
    A signed SAS query string for a container.

    ``query`` holds the bare query string as produced by the SDK (no leading
    '?'). In stored-policy mode it references ``policy_id`` and carries no
    permissions or expiry of its own.
    """

    query: str
    container_url: str
    mode: str
    policy_id: Optional[str] = None
    expires_on: Optional[datetime] = None
    permissions: Optional[PermissionSet] = None

    @property
    def query_string(self) -> str:
        return f"?{self.query}"

    @property
    def uri(self) -> str:
        return f"{self.container_url}?{self.query}"

    @property
    def parameters(self) -> Dict[str, str]:
        return {key: values[0] for key, values in parse_qs(self.query).items()}

    def __str__(self) -> str:
        return self.query_string


@dataclass(frozen=True)
class IssuanceResult:
    """Token plus the policy version that backs it."""

    token: AccessToken
    policy_last_modified: Optional[datetime]
    policy_id: Optional[str] = None
    container_name: Optional[str] = None

    def response_message(self) -> str:
        if self.policy_last_modified is None:
            return "policy last modified: unknown"
        stamp = as_utc(self.policy_last_modified).strftime("%Y-%m-%d %H:%M:%S")
        return f"policy last modified: {stamp} UTC"
