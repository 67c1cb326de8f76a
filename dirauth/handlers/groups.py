"""
Group membership resolution
===========================
Loads the group catalog and resolves a user's transitive ("nested") group
membership.

Nested membership is a directed graph that may contain cycles
(group A member of group B member of group A). It is walked breadth-first
with an explicit FIFO and a visited set keyed by DN, so every group is queried
for its parents exactly once and traversal always terminates.
"""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Deque, Dict, List, Optional, Set

from dirauth.directory import DirectoryQuery, Entry
from dirauth.handlers.base import BaseHandler, build_user_lookup, user_principal_name
from dirauth.models import GroupRecord, MembershipMap
from dirauth.utils import escape_dn_filter_value, extract_name, mail_local_part

logger = logging.getLogger(__name__)

# All groups in the directory
GROUP_LOOKUP = '(&(objectClass=Group))'

# All groups that have the given group as a member
GROUP_MEMBER_OF_LOOKUP = '(&(objectClass=group)(member={group}))'

MEMBER_OF_ATTRIBUTE = 'memberOf'


def build_group_parent_lookup(group_dn: str) -> str:
    return GROUP_MEMBER_OF_LOOKUP.format(group=escape_dn_filter_value(group_dn))


def load_all_groups(directory: DirectoryQuery) -> MembershipMap:
    """
    Load every group in the directory - 1 (possibly paged) LDAP query.

    This is a directory-wide scan; call it at most once per authentication.

    Returns:
        Dict of group DN -> GroupRecord(dn, name, mail local part)
    """
    groups: MembershipMap = {}

    for entry in directory.search(None, GROUP_LOOKUP, True, ['cn', 'mail']):
        if entry.dn in groups:
            continue
        groups[entry.dn] = GroupRecord(
            dn=entry.dn,
            name=extract_name(entry.dn),
            mail=mail_local_part(entry.first('mail')),
        )

    logger.info(f"[GROUP CATALOG] Loaded {len(groups)} group(s)")
    return groups


def find_parent_groups(directory: DirectoryQuery, group_dn: str) -> List[Entry]:
    """Groups that list `group_dn` as a member - 1 LDAP query."""
    return directory.search(None, build_group_parent_lookup(group_dn), True, ['cn'])


def _expand_sequential(
    directory: DirectoryQuery,
    queue: Deque[str],
    visited: Set[str],
    member_of: Dict[str, GroupRecord],
) -> None:
    while queue:
        group_dn = queue.popleft()
        for parent in find_parent_groups(directory, group_dn):
            if parent.dn in visited:
                continue
            visited.add(parent.dn)
            queue.append(parent.dn)
            member_of[parent.dn] = GroupRecord(parent.dn, extract_name(parent.dn))
            logger.debug(f"[NESTED GROUPS] {group_dn} is a member of {parent.dn}")


def _expand_parallel(
    directory: DirectoryQuery,
    queue: Deque[str],
    visited: Set[str],
    member_of: Dict[str, GroupRecord],
    max_workers: int,
) -> None:
    # Searches for one BFS level run concurrently; the visited set is only
    # touched here, in the coordinating thread, once each level's results are in.
    level = list(queue)
    queue.clear()
    depth = 0

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while level:
            depth += 1
            logger.debug(f"[NESTED GROUPS] Depth {depth}: checking {len(level)} group(s)")
            futures = [(dn, pool.submit(find_parent_groups, directory, dn)) for dn in level]

            next_level = []
            for group_dn, future in futures:
                for parent in future.result():
                    if parent.dn in visited:
                        continue
                    visited.add(parent.dn)
                    next_level.append(parent.dn)
                    member_of[parent.dn] = GroupRecord(parent.dn, extract_name(parent.dn))
                    logger.debug(f"[NESTED GROUPS] {group_dn} is a member of {parent.dn}")
            level = next_level


def resolve_memberships(
    directory: DirectoryQuery,
    username: str,
    catalog: MembershipMap,
    upn: Optional[str] = None,
    max_workers: int = 1,
) -> Optional[MembershipMap]:
    """
    Resolve the transitive closure of a user's group membership.

    Args:
        directory: Bound directory session
        username: Normalized account name
        catalog: Result of load_all_groups() for this authentication
        upn: userPrincipalName for the user lookup, defaults to username
        max_workers: >1 fans each BFS level out over a thread pool

    Returns:
        - None when the user entry carries no memberOf attribute at all
        - {} when the user entry is not found or memberOf lists no groups
        - otherwise group DN -> GroupRecord, catalog metadata merged in

    Raises:
        DirectoryCommunicationError: propagated from the directory unchanged
    """
    entry = directory.search_one(None, build_user_lookup(username, upn), [MEMBER_OF_ATTRIBUTE])
    if entry is None:
        logger.warning(f"[NESTED GROUPS] No directory entry for {username}")
        return {}
    if not entry.has(MEMBER_OF_ATTRIBUTE):
        logger.warning(f"[NESTED GROUPS] Entry {entry.dn} carries no {MEMBER_OF_ATTRIBUTE} attribute")
        return None

    member_of: Dict[str, GroupRecord] = {}
    visited: Set[str] = set()
    queue: Deque[str] = deque()

    for value in entry.get(MEMBER_OF_ATTRIBUTE):
        group_dn = str(value)
        if group_dn in visited:
            continue
        visited.add(group_dn)
        queue.append(group_dn)
        member_of[group_dn] = GroupRecord(group_dn, extract_name(group_dn))

    direct_count = len(member_of)

    if max_workers > 1:
        _expand_parallel(directory, queue, visited, member_of, max_workers)
    else:
        _expand_sequential(directory, queue, visited, member_of)

    if len(member_of) > direct_count:
        logger.info(f"[NESTED GROUPS] Found {len(member_of) - direct_count} parent group(s) via nesting")

    return merge_catalog(member_of, catalog)


def merge_catalog(member_of: MembershipMap, catalog: MembershipMap) -> MembershipMap:
    """Replace provisional records with catalog records where the catalog knows the DN."""
    return {dn: catalog.get(dn, record) for dn, record in member_of.items()}


class GroupsLoader(BaseHandler):
    """Handler that fills user_data['memberOf'] with the resolved membership map"""

    def __init__(self, max_workers: int = 1):
        self.max_workers = max_workers

    def get_user_groups(self, directory: DirectoryQuery, user_data: Dict) -> Optional[MembershipMap]:
        catalog = load_all_groups(directory)
        member_of = resolve_memberships(
            directory,
            user_data['username'],
            catalog,
            upn=user_principal_name(user_data),
            max_workers=self.max_workers,
        )
        if member_of is not None:
            logger.info(f"[NESTED GROUPS] {user_data['username']} is a member of {len(member_of)} group(s)")
        return member_of
