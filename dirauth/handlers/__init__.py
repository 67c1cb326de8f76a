"""Post-bind enrichment handlers"""

from .base import BaseHandler, USER_LOOKUP, build_user_lookup
from .groups import GroupsLoader, load_all_groups, resolve_memberships
from .thumbnail import ThumbnailLoader
from .user_info import UserInfoLoader

__all__ = [
    'BaseHandler',
    'USER_LOOKUP',
    'build_user_lookup',
    'GroupsLoader',
    'load_all_groups',
    'resolve_memberships',
    'ThumbnailLoader',
    'UserInfoLoader',
]
