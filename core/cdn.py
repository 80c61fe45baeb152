"""CDN URL construction for guild and user assets."""

from typing import Optional

DEFAULT_CDN_URL = "https://cdn.discordapp.com"

ICON_SIZE = 128
AVATAR_SIZE = 128
BANNER_SIZE = 600
SPLASH_SIZE = 600


def asset_url(
    asset_class: str,
    owner_id: str,
    asset_hash: Optional[str],
    size: int,
    cdn_url: str = DEFAULT_CDN_URL,
) -> Optional[str]:
    """Build `<cdn>/<class>/<owner>/<hash>.<ext>?size=<n>`; animated hashes get .gif"""
    if not asset_hash:
        return None
    ext = "gif" if asset_hash.startswith("a_") else "png"
    return f"{cdn_url.rstrip('/')}/{asset_class}/{owner_id}/{asset_hash}.{ext}?size={size}"


def guild_icon_url(guild_id: str, icon: Optional[str], cdn_url: str = DEFAULT_CDN_URL):
    return asset_url("icons", guild_id, icon, ICON_SIZE, cdn_url)


def guild_banner_url(guild_id: str, banner: Optional[str], cdn_url: str = DEFAULT_CDN_URL):
    return asset_url("banners", guild_id, banner, BANNER_SIZE, cdn_url)


def guild_splash_url(guild_id: str, splash: Optional[str], cdn_url: str = DEFAULT_CDN_URL):
    return asset_url("splashes", guild_id, splash, SPLASH_SIZE, cdn_url)


def user_avatar_url(user_id: str, avatar: Optional[str], cdn_url: str = DEFAULT_CDN_URL):
    return asset_url("avatars", user_id, avatar, AVATAR_SIZE, cdn_url)


def user_banner_url(user_id: str, banner: Optional[str], cdn_url: str = DEFAULT_CDN_URL):
    return asset_url("banners", user_id, banner, BANNER_SIZE, cdn_url)
