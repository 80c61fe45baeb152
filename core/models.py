"""
Core data models for the Vanity & User Lookup API

Response shapes returned to the browser, plus the tagged variants that raw
upstream responses are decoded into before any business logic sees them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# Response shapes


class ChannelSummary(BaseModel):
    id: str
    name: Optional[str] = None
    type: int = 0


class GuildProfileSummary(BaseModel):
    """Display-safe subset of a guild's public profile"""

    tag: Optional[str] = None
    badge: Optional[int] = None
    badge_color_primary: Optional[str] = None
    badge_color_secondary: Optional[str] = None
    member_count: Optional[int] = None
    online_count: Optional[int] = None
    traits: List[str] = Field(default_factory=list)
    visibility: Optional[int] = None


class GuildSummary(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None
    banner: Optional[str] = None
    splash: Optional[str] = None
    description: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    verification_level: int = 0
    nsfw: bool = False
    nsfw_level: int = 0
    premium_subscription_count: int = 0
    premium_tier: int = 0
    vanity_url_code: Optional[str] = None
    approximate_member_count: Optional[int] = None
    approximate_presence_count: Optional[int] = None
    channel: Optional[ChannelSummary] = None
    profile: Optional[GuildProfileSummary] = None


class VanityCheckResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    available: bool
    error: Optional[str] = None
    guild: Optional[GuildSummary] = None
    retry_after: Optional[int] = Field(default=None, alias="retryAfter")


class UserSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    global_name: Optional[str] = Field(default=None, alias="globalName")
    avatar: Optional[str] = None
    banner: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    banner_url: Optional[str] = Field(default=None, alias="bannerUrl")
    accent_color: Optional[int] = Field(default=None, alias="accentColor")
    flags: int = 0
    bot: bool = False
    verified: bool = False
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class UserLookupResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: Optional[str] = None
    user: Optional[UserSummary] = None
    retry_after: Optional[int] = Field(default=None, alias="retryAfter")


# Decoded upstream outcomes


@dataclass(frozen=True)
class InviteAvailable:
    code: str


@dataclass(frozen=True)
class InviteTaken:
    code: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserFound:
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpstreamFailure:
    status: int
    message: Optional[str] = None
    retry_after: Optional[int] = None


InviteOutcome = Union[InviteAvailable, InviteTaken, UpstreamFailure]
UserOutcome = Union[UserFound, UpstreamFailure]
