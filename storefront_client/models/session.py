"""Session data models: user profile, live session and its published snapshot"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Any


class SessionState(Enum):
    """Authentication lifecycle states"""
    UNKNOWN = "unknown"
    RESTORING = "restoring"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class UserProfile:
    """User profile as returned by GET /auth/profile"""
    id: str
    name: str
    email: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for persistence"""
        data = dict(self.extra)
        data.update({
            '_id': self.id,
            'name': self.name,
            'email': self.email
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserProfile':
        """Create UserProfile from an API or persisted dictionary"""
        if not isinstance(data, dict):
            raise ValueError(f"User profile must be an object, got {type(data).__name__}")
        user_id = data.get('_id') or data.get('id')
        if not user_id:
            raise ValueError("User profile is missing an id")
        extra = {k: v for k, v in data.items() if k not in ('_id', 'id', 'name', 'email')}
        return cls(
            id=str(user_id),
            name=data.get('name') or '',
            email=data.get('email'),
            extra=extra
        )


@dataclass(frozen=True)
class Session:
    """A live authentication: bearer token plus the profile it belongs to.

    Either both halves exist or there is no Session at all.
    """
    token: str
    user: UserProfile

    def __post_init__(self):
        if not self.token:
            raise ValueError("Session requires a token")
        if self.user is None:
            raise ValueError("Session requires a user profile")

    def with_user(self, user: UserProfile) -> 'Session':
        """Return a copy carrying a refreshed profile"""
        return Session(token=self.token, user=user)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session shared with subscribers.

    Carries no bearer token; only the gateway reads it.
    """
    state: SessionState
    user: Optional[UserProfile] = None
    reason: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.user is not None


@dataclass(frozen=True)
class Notification:
    """User-facing message (rendered as a toast by the UI layer)"""
    title: str
    description: str = ""
    level: str = "info"  # info, success, error
