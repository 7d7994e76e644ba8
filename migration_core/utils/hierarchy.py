"""
Group hierarchy and inherited membership helpers
Rebuilds ancestor chains and inherited-access flags from flat listings
"""
from collections import namedtuple

from migration_core.logging.logger import get_logger

logger = get_logger("hierarchy")

MAX_DEPTH = 20

AncestorChain = namedtuple("AncestorChain", ["node_id", "chain", "depth"])

MembershipView = namedtuple("MembershipView", ["members", "source", "approximated"])

SOURCE_ALL = "all"
SOURCE_DIRECT_ONLY = "direct-only"
SOURCE_DENIED = "denied"


def build_ancestor_chains(nodes, id_key='id', parent_key='parent_id', path_key='full_path'):
    """
    Build the ancestor chain of every node from a flat listing.

    Parent links are followed until a root, an unknown parent or MAX_DEPTH
    hops, or until a node would repeat. A chain never contains the node
    itself or the same ancestor twice.

    Args:
        nodes: List of dicts with id, optional parent id and path
        id_key: Key of the node id
        parent_key: Key of the parent id (None/0/missing for roots)
        path_key: Key of the node path

    Returns:
        dict: {node_id: AncestorChain} with chain ordered root-first as
        [{'id': ..., 'path': ...}, ...]
    """
    by_id = {}
    for node in nodes:
        node_id = node.get(id_key)
        if node_id is not None:
            by_id[node_id] = node

    chains = {}
    for node_id, node in by_id.items():
        ancestors = []
        visited = {node_id}
        parent_id = node.get(parent_key)

        while parent_id and len(ancestors) < MAX_DEPTH:
            parent = by_id.get(parent_id)
            if parent is None:
                # Parent outside the listing (no access or different scope)
                break
            if parent_id in visited:
                logger.warning(f"Cycle in parent links at node {parent_id}, stopping walk for {node_id}")
                break
            ancestors.append({'id': parent_id, 'path': parent.get(path_key)})
            visited.add(parent_id)
            parent_id = parent.get(parent_key)

        if parent_id and len(ancestors) >= MAX_DEPTH:
            logger.warning(f"Ancestor chain for {node_id} truncated at depth {MAX_DEPTH}")

        ancestors.reverse()
        chains[node_id] = AncestorChain(node_id, ancestors, len(ancestors))

    return chains


def mark_inherited(all_members, direct_members, key='id'):
    """
    Flag members who only have access through an ancestor.

    Args:
        all_members: Effective membership listing (direct + inherited)
        direct_members: Direct membership listing of the same scope
        key: Identity key of a member

    Returns:
        list: Copies of all_members with 'inherited' set
    """
    direct_ids = {m.get(key) for m in direct_members or []}
    marked = []
    for member in all_members or []:
        entry = dict(member)
        entry['inherited'] = member.get(key) not in direct_ids
        marked.append(entry)
    return marked


def resolve_members(all_result, direct_result, key='id'):
    """
    Combine 'all' and 'direct' membership fetches into one view.

    If the effective listing is denied but the direct one is readable,
    degrade to direct members only, all marked non-inherited, and flag the
    view as approximated.

    Args:
        all_result: FetchResult of the effective (all) members listing
        direct_result: FetchResult of the direct members listing
        key: Identity key of a member

    Returns:
        MembershipView: (members, source, approximated)
    """
    if not all_result.denied:
        if direct_result.denied:
            # Inheritance unknown without the direct listing
            members = [dict(m, inherited=None) for m in all_result.items]
            return MembershipView(members, SOURCE_ALL, True)
        return MembershipView(mark_inherited(all_result.items, direct_result.items, key), SOURCE_ALL, False)

    if not direct_result.denied:
        logger.warning(
            "Effective membership listing denied; using direct members only "
            "(inherited access is not reported)"
        )
        members = [dict(m, inherited=False) for m in direct_result.items]
        return MembershipView(members, SOURCE_DIRECT_ONLY, True)

    return MembershipView([], SOURCE_DENIED, True)
