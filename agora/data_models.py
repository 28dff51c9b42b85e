"""
Data models for the agora forum client.
These mirror the backend's view models; the backend owns their lifecycle.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

ROLES = ("user", "moderator", "admin")


def _pick(d: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among keys."""
    for k in keys:
        v = d.get(k)
        if v is not None:
            return v
    return default


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class User:
    """Represents a forum member."""
    id: str
    email: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    role: str = "user"
    reputation: int = 0
    rating: Optional[float] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "User":
        role = d.get("role") or "user"
        return cls(
            id=str(d.get("id") or d.get("_id") or ""),
            email=d.get("email") or "",
            username=_pick(d, "username", "name"),
            avatar_url=_pick(d, "avatar", "avatarUrl", "avatar_url"),
            bio=d.get("bio"),
            location=d.get("location"),
            role=role if role in ROLES else "user",
            reputation=_int(d.get("reputation")),
            rating=d.get("rating"),
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at")),
        )

    def to_snapshot(self) -> Dict[str, Any]:
        """JSON-safe dict used to persist the current user locally"""
        out = asdict(self)
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        return out

    @property
    def display_name(self) -> str:
        return self.username or self.email


@dataclass
class Category:
    """Discussion grouping; subcategories nest one level deep."""
    id: str
    name: str
    slug: str = ""
    description: str = ""
    thread_count: int = 0
    post_count: int = 0
    parent_id: Optional[str] = None
    subcategories: List["Category"] = field(default_factory=list)

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Category":
        subs = d.get("subcategories") or []
        return cls(
            id=str(d.get("id")),
            name=d.get("name") or "",
            slug=d.get("slug") or "",
            description=d.get("description") or "",
            thread_count=_int(_pick(d, "threadCount", "thread_count")),
            post_count=_int(_pick(d, "postCount", "post_count")),
            parent_id=_pick(d, "parentId", "parent_id"),
            subcategories=[cls.from_api(s) for s in subs if isinstance(s, dict) and s.get("id") is not None],
        )


@dataclass
class Thread:
    """A discussion topic within a category."""
    id: str
    title: str
    content: str = ""
    slug: str = ""
    category_id: Optional[str] = None
    author: Optional[User] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_post_at: Optional[datetime] = None
    view_count: int = 0
    post_count: int = 0
    is_pinned: bool = False
    is_locked: bool = False

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Thread":
        author = d.get("author")
        return cls(
            id=str(d.get("id")),
            title=d.get("title") or "",
            content=d.get("content") or "",
            slug=d.get("slug") or "",
            category_id=_pick(d, "categoryId", "category_id"),
            author=User.from_api(author) if isinstance(author, dict) else None,
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at")),
            updated_at=parse_timestamp(_pick(d, "updatedAt", "updated_at")),
            last_post_at=parse_timestamp(_pick(d, "lastPostAt", "last_post_at")),
            view_count=_int(_pick(d, "viewCount", "view_count", "views")),
            post_count=_int(_pick(d, "postCount", "post_count", "replies")),
            is_pinned=bool(_pick(d, "isPinned", "is_pinned", "pinned", default=False)),
            is_locked=bool(_pick(d, "isLocked", "is_locked", "locked", default=False)),
        )


@dataclass
class Post:
    """A reply within a thread."""
    id: str
    content: str
    thread_id: Optional[str] = None
    author: Optional[User] = None
    reply_to_id: Optional[str] = None
    is_answer: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Post":
        author = d.get("author")
        return cls(
            id=str(d.get("id")),
            content=d.get("content") or d.get("text") or "",
            thread_id=_pick(d, "threadId", "thread_id"),
            author=User.from_api(author) if isinstance(author, dict) else None,
            reply_to_id=_pick(d, "replyToId", "reply_to_id", "parentId"),
            is_answer=bool(_pick(d, "isAnswer", "is_answer", default=False)),
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at")),
            updated_at=parse_timestamp(_pick(d, "updatedAt", "updated_at")),
        )


@dataclass
class MarketplaceListing:
    """An item for sale. status goes active -> sold/inactive."""
    id: str
    title: str
    description: str = ""
    price: float = 0.0
    category: str = ""
    location: str = ""
    condition: Optional[str] = None
    status: str = "active"
    images: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    seller: Optional[User] = None
    is_favorited: bool = False
    view_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "MarketplaceListing":
        seller = d.get("seller")
        try:
            price = float(d.get("price") or 0)
        except (TypeError, ValueError):
            price = 0.0
        return cls(
            id=str(d.get("id")),
            title=d.get("title") or "",
            description=d.get("description") or "",
            price=price,
            category=d.get("category") or "",
            location=d.get("location") or "",
            condition=d.get("condition"),
            status=d.get("status") or "active",
            images=list(d.get("images") or []),
            tags=list(d.get("tags") or []),
            seller=User.from_api(seller) if isinstance(seller, dict) else None,
            is_favorited=bool(_pick(d, "isFavorited", "is_favorited", default=False)),
            view_count=_int(_pick(d, "viewCount", "view_count")),
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at")),
            updated_at=parse_timestamp(_pick(d, "updatedAt", "updated_at")),
        )


@dataclass
class MarketplaceCategory:
    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = None
    subcategories: List["MarketplaceCategory"] = field(default_factory=list)

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "MarketplaceCategory":
        subs = d.get("subcategories") or []
        return cls(
            id=str(d.get("id")),
            name=d.get("name") or "",
            description=d.get("description"),
            icon=d.get("icon"),
            parent_id=_pick(d, "parentId", "parent_id"),
            subcategories=[cls.from_api(s) for s in subs if isinstance(s, dict) and s.get("id") is not None],
        )


@dataclass
class Message:
    """Represents a private message."""
    id: str
    conversation_id: Optional[str]
    sender: Optional[User]
    content: str
    created_at: Optional[datetime] = None
    is_read: bool = False

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Message":
        sender = d.get("sender")
        return cls(
            id=str(d.get("id")),
            conversation_id=_pick(d, "conversationId", "conversation_id"),
            sender=User.from_api(sender) if isinstance(sender, dict) else None,
            content=d.get("content") or "",
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at", "timestamp")),
            is_read=bool(_pick(d, "isRead", "is_read", "read", default=False)),
        )


@dataclass
class Conversation:
    """A private message thread between two or more participants."""
    id: str
    participants: List[User] = field(default_factory=list)
    last_message: Optional[Message] = None
    unread_count: int = 0
    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Conversation":
        last = _pick(d, "lastMessage", "last_message")
        return cls(
            id=str(d.get("id")),
            participants=[User.from_api(p) for p in d.get("participants") or [] if isinstance(p, dict)],
            last_message=Message.from_api(last) if isinstance(last, dict) else None,
            unread_count=_int(_pick(d, "unreadCount", "unread_count")),
            updated_at=parse_timestamp(_pick(d, "updatedAt", "updated_at")),
        )


@dataclass
class Notification:
    """Represents a notification."""
    id: str
    type: str  # 'mention', 'reply', 'vote', 'follow', 'message', 'system'
    message: str
    read: bool = False
    related_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "Notification":
        return cls(
            id=str(d.get("id")),
            type=d.get("type") or "system",
            message=d.get("message") or d.get("content") or "",
            read=bool(_pick(d, "read", "isRead", "is_read", default=False)),
            related_id=_pick(d, "relatedId", "related_id"),
            user_id=_pick(d, "userId", "user_id"),
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at")),
        )


@dataclass
class SearchResult:
    type: str  # 'thread', 'post', 'user', 'listing'
    id: str
    content: str = ""
    title: Optional[str] = None
    author: Optional[User] = None
    thread_id: Optional[str] = None
    highlights: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, d: Dict[str, Any]) -> "SearchResult":
        author = d.get("author")
        highlights = d.get("highlights") or d.get("highlight") or []
        if isinstance(highlights, str):
            highlights = [highlights]
        return cls(
            type=d.get("type") or "thread",
            id=str(d.get("id")),
            content=d.get("content") or "",
            title=d.get("title"),
            author=User.from_api(author) if isinstance(author, dict) else None,
            thread_id=_pick(d, "threadId", "thread_id"),
            highlights=[h for h in highlights if isinstance(h, str)],
            created_at=parse_timestamp(_pick(d, "createdAt", "created_at")),
        )
