from typing import Dict, List, Optional, Set

from shared.errors import CycleError

ParentMap = Dict[int, Optional[int]]


def ensure_acyclic(tag_id: Optional[int], parent_id: Optional[int], parent_map: ParentMap):
    """
    检查把 tag_id 的父标签设为 parent_id 后祖先链是否仍然有限且无环。
    tag_id 为 None 表示尚未分配ID的新标签。
    """
    if parent_id is None:
        return
    if tag_id is not None and parent_id == tag_id:
        raise CycleError("标签不能以自身为父标签")

    visited: Set[int] = set()
    current: Optional[int] = parent_id
    while current is not None:
        if current == tag_id:
            raise CycleError("设置该父标签会使标签成为自己的祖先")
        if current in visited:
            raise CycleError("现有标签层级中存在循环")
        visited.add(current)
        current = parent_map.get(current)


def ancestor_ids(tag_id: int, parent_map: ParentMap) -> List[int]:
    """从直接父标签到根标签的ID列表，遇到重复节点时停止。"""
    chain: List[int] = []
    visited = {tag_id}
    current = parent_map.get(tag_id)
    while current is not None and current not in visited:
        chain.append(current)
        visited.add(current)
        current = parent_map.get(current)
    return chain
