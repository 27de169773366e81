from typing import Any, Dict, Optional

from shared.errors import AuthenticationError

CurrentUser = Optional[Dict[str, Any]]


def get_user_id(current_user: CurrentUser) -> Optional[int]:
    """从身份载荷中取出用户ID，未认证时返回 None。"""
    if not current_user or current_user.get("id") is None:
        return None
    try:
        return int(current_user["id"])
    except (TypeError, ValueError):
        return None


def require_user_id(current_user: CurrentUser) -> int:
    """
    要求调用方必须已认证，否则抛出 AuthenticationError。
    """
    user_id = get_user_id(current_user)
    if user_id is None:
        raise AuthenticationError()
    return user_id
