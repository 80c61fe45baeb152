"""
Upstream Response Normalization.

Raw upstream responses are decoded once, at the boundary, into one of the
tagged outcomes from `core.models` (`InviteAvailable`, `InviteTaken`,
`UserFound`, `UpstreamFailure`). Everything downstream works with those
variants and with the response models; nothing else inspects raw JSON.

Key Components:
- `decode_invite` / `decode_user`: Status + body → outcome.
- `failure_to_exception`: Outcome → the matching API exception.
- `build_guild_summary` / `build_user_summary`: Payload → response model,
  with CDN URLs filled in and unsafe nested data dropped.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core import cdn
from core.exceptions import (
    NotFoundError,
    RateLimitedError,
    UpstreamAuthError,
    UpstreamContractError,
    UpstreamHTTPError,
    VanityAPIException,
)
from core.models import (
    ChannelSummary,
    GuildProfileSummary,
    GuildSummary,
    InviteAvailable,
    InviteOutcome,
    InviteTaken,
    UpstreamFailure,
    UserFound,
    UserOutcome,
    UserSummary,
)
from core.validation import snowflake_timestamp_ms
from providers.discord_provider import UpstreamResponse, parse_retry_after

UNKNOWN_INVITE_MESSAGE = "Unknown Invite"
UNKNOWN_INVITE_CODE = 10006


def _as_dict(payload: Any) -> Dict[str, Any]:
    return payload if isinstance(payload, dict) else {}


def _is_unknown_invite(body: Dict[str, Any]) -> bool:
    return (
        body.get("message") == UNKNOWN_INVITE_MESSAGE
        or body.get("code") == UNKNOWN_INVITE_CODE
    )


def _failure(response: UpstreamResponse, default_retry_after: int) -> UpstreamFailure:
    body = _as_dict(response.payload)
    retry_after = None
    if response.status == 429:
        retry_after = parse_retry_after(
            response.headers.get("Retry-After", body.get("retry_after")),
            default_retry_after,
        )
    return UpstreamFailure(
        status=response.status,
        message=body.get("message"),
        retry_after=retry_after,
    )


def decode_invite(
    code: str, response: UpstreamResponse, default_retry_after: int = 5
) -> InviteOutcome:
    body = _as_dict(response.payload)

    if response.status == 404 or (not response.ok and _is_unknown_invite(body)):
        return InviteAvailable(code)

    if response.ok:
        if not isinstance(body.get("guild"), dict):
            raise UpstreamContractError(missing="guild")
        return InviteTaken(code, body)

    return _failure(response, default_retry_after)


def decode_user(response: UpstreamResponse, default_retry_after: int = 5) -> UserOutcome:
    body = _as_dict(response.payload)

    if response.ok:
        if not body.get("id") or "username" not in body:
            raise UpstreamContractError(missing="id/username")
        return UserFound(body)

    return _failure(response, default_retry_after)


def failure_to_exception(
    failure: UpstreamFailure,
    resource: str,
    identifier: str,
    not_found_message: str,
    fallback_message: str,
) -> VanityAPIException:
    if failure.status == 429:
        return RateLimitedError(
            failure.retry_after or 5,
            f"Rate limited. Retry after {failure.retry_after or 5} seconds",
            source="upstream",
        )
    if failure.status == 401:
        return UpstreamAuthError()
    if failure.status == 404:
        return NotFoundError(not_found_message, resource, identifier)
    return UpstreamHTTPError(failure.status, failure.message or fallback_message)


def _trait_label(trait: Any) -> str:
    if isinstance(trait, str):
        return trait
    if isinstance(trait, dict):
        for field_name in ("label", "name"):
            value = trait.get(field_name)
            if isinstance(value, str) and value:
                return value
    return str(trait)


def sanitize_traits(traits: Any) -> List[str]:
    if not isinstance(traits, list):
        return []
    return [_trait_label(trait) for trait in traits]


def _build_profile(profile: Any) -> Optional[GuildProfileSummary]:
    if not isinstance(profile, dict):
        return None
    # game_activity, emojis and other nested blobs are not copied
    return GuildProfileSummary(
        tag=profile.get("tag"),
        badge=profile.get("badge"),
        badge_color_primary=profile.get("badge_color_primary"),
        badge_color_secondary=profile.get("badge_color_secondary"),
        member_count=profile.get("member_count"),
        online_count=profile.get("online_count"),
        traits=sanitize_traits(profile.get("traits")),
        visibility=profile.get("visibility"),
    )


def _build_channel(channel: Any) -> Optional[ChannelSummary]:
    if not isinstance(channel, dict) or channel.get("id") is None:
        return None
    return ChannelSummary(
        id=str(channel["id"]),
        name=channel.get("name"),
        type=channel.get("type") or 0,
    )


def build_guild_summary(
    invite: Dict[str, Any], cdn_url: str = cdn.DEFAULT_CDN_URL
) -> GuildSummary:
    guild = _as_dict(invite.get("guild"))
    guild_id = str(guild.get("id", ""))

    features = guild.get("features")
    features = [f for f in features if isinstance(f, str)] if isinstance(features, list) else []

    return GuildSummary(
        id=guild_id,
        name=guild.get("name") or "",
        icon=cdn.guild_icon_url(guild_id, guild.get("icon"), cdn_url),
        banner=cdn.guild_banner_url(guild_id, guild.get("banner"), cdn_url),
        splash=cdn.guild_splash_url(guild_id, guild.get("splash"), cdn_url),
        description=guild.get("description"),
        features=features,
        verification_level=guild.get("verification_level") or 0,
        nsfw=bool(guild.get("nsfw")),
        nsfw_level=guild.get("nsfw_level") or 0,
        premium_subscription_count=guild.get("premium_subscription_count") or 0,
        premium_tier=guild.get("premium_tier") or 0,
        vanity_url_code=guild.get("vanity_url_code"),
        approximate_member_count=invite.get("approximate_member_count"),
        approximate_presence_count=invite.get("approximate_presence_count"),
        channel=_build_channel(invite.get("channel")),
        profile=_build_profile(invite.get("profile")),
    )


def build_user_summary(
    user: Dict[str, Any], cdn_url: str = cdn.DEFAULT_CDN_URL
) -> UserSummary:
    user_id = str(user["id"])
    avatar = user.get("avatar") or None
    banner = user.get("banner") or None

    created_at = None
    if user_id.isdigit():
        created_at = datetime.fromtimestamp(
            snowflake_timestamp_ms(user_id) / 1000, tz=timezone.utc
        ).isoformat()

    return UserSummary(
        id=user_id,
        username=user.get("username") or "",
        global_name=user.get("global_name"),
        avatar=avatar,
        banner=banner,
        avatar_url=cdn.user_avatar_url(user_id, avatar, cdn_url),
        banner_url=cdn.user_banner_url(user_id, banner, cdn_url),
        accent_color=user.get("accent_color"),
        flags=user.get("flags", user.get("public_flags")) or 0,
        bot=bool(user.get("bot")),
        verified=bool(user.get("verified")),
        created_at=created_at,
    )
