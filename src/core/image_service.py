from typing import List, Protocol, Sequence


class ImageResolver(Protocol):
    """把图片ID解析为可访问的URL，核心层只读使用。"""

    def resolve(self, image_ids: Sequence[str]) -> List[str]: ...


class StaticImageResolver:
    """按固定前缀拼接图片URL，保持图片ID的原有顺序"""

    def __init__(self, base_url: str = "/images"):
        self.base_url = base_url.rstrip("/")

    def resolve(self, image_ids: Sequence[str]) -> List[str]:
        return [f"{self.base_url}/{image_id}" for image_id in image_ids if image_id]
