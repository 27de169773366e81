from typing import Optional


class ForumCoreError(Exception):
    """核心层异常基类，message 可以直接展示给用户。"""

    default_message = "操作失败"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(ForumCoreError):
    default_message = "未登录或会话失效"


class AuthorizationError(ForumCoreError):
    default_message = "没有权限执行此操作"


class ValidationError(ForumCoreError):
    default_message = "请求参数无效"


class NotFoundError(ForumCoreError):
    default_message = "目标不存在"


class CycleError(ForumCoreError):
    default_message = "标签层级不能形成循环"


class ConflictError(ForumCoreError):
    default_message = "数据正在被并发修改，请稍后重试"
