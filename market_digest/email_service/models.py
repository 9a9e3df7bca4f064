"""
Data types shared by the subscription and delivery modules.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    """Current wall-clock time in the host's timezone."""
    return datetime.now().astimezone()


class Frequency(str, Enum):
    """Delivery cadence. Only daily digests are issued today."""

    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'

    @classmethod
    def parse(cls, value: Optional[Any]) -> 'Frequency':
        if value is None or value == '':
            return cls.DAILY
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ', '.join(f.value for f in cls)
            raise ValidationError(f"Invalid frequency {value!r}; expected one of: {allowed}")


def normalize_tags(tags: Optional[Iterable[Any]], field_name: str) -> FrozenSet[str]:
    """Collapse a tag list into a set of strings."""
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        raise ValidationError(f"{field_name} must be a list of strings")
    result = set()
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError(f"{field_name} must contain only strings")
        tag = tag.strip()
        if tag:
            result.add(tag)
    return frozenset(result)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class Subscriber:
    """One newsletter recipient and their preferences."""

    id: str
    email: str
    name: Optional[str] = None
    topics: FrozenSet[str] = frozenset()
    sources: FrozenSet[str] = frozenset()
    frequency: Frequency = Frequency.DAILY
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the persisted (camelCase) layout."""
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'topics': sorted(self.topics),
            'sources': sorted(self.sources),
            'frequency': self.frequency.value,
            'isActive': self.is_active,
            'createdAt': _format_timestamp(self.created_at),
            'updatedAt': _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Subscriber':
        created = _parse_timestamp(data.get('createdAt') or utcnow())
        return cls(
            id=str(data['id']),
            email=str(data['email']),
            name=data.get('name') or None,
            topics=normalize_tags(data.get('topics') or [], 'topics'),
            sources=normalize_tags(data.get('sources') or [], 'sources'),
            frequency=Frequency.parse(data.get('frequency')),
            # Records written before the flag existed count as active
            is_active=data.get('isActive', True) is not False,
            created_at=created,
            updated_at=_parse_timestamp(data.get('updatedAt') or created),
        )


@dataclass
class UnsubscribeResult:
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.success, 'message': self.message}


@dataclass(frozen=True)
class EmailMessage:
    """A single outbound email."""

    to: str
    subject: str
    html: str
    text: Optional[str] = None

    def readdressed(self, recipient: str) -> 'EmailMessage':
        return EmailMessage(to=recipient, subject=self.subject, html=self.html, text=self.text)


@dataclass(frozen=True)
class DeliveryReceipt:
    recipient: str
    message_id: str


@dataclass(frozen=True)
class DeliveryFailure:
    recipient: str
    kind: str
    error: str


@dataclass
class BatchResult:
    """Aggregate outcome of one batch delivery."""

    receipts: List[DeliveryReceipt] = field(default_factory=list)
    failures: List[DeliveryFailure] = field(default_factory=list)
    redirected_to: Optional[str] = None
    suppressed: bool = False

    @property
    def succeeded(self) -> int:
        return len(self.receipts)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        if self.suppressed:
            return "test mode: delivery suppressed"
        text = f"{self.succeeded}/{self.attempted} delivered"
        if self.redirected_to:
            text += f" (redirected to {self.redirected_to})"
        return text
