import re
from typing import Iterable

_SEPARATOR_RUN = re.compile(r"-{2,}")


def slugify(name: str) -> str:
    """
    由标签名派生 slug：转小写，非字母数字字符替换为 '-'，合并连续的 '-'。
    """
    lowered = name.strip().lower()
    replaced = "".join(ch if ch.isalnum() else "-" for ch in lowered)
    slug = _SEPARATOR_RUN.sub("-", replaced).strip("-")
    return slug or "tag"


def disambiguate_slug(base: str, taken: Iterable[str]) -> str:
    """slug 冲突时追加数字后缀: base, base-2, base-3 ..."""
    taken_set = set(taken)
    if base not in taken_set:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken_set:
        suffix += 1
    return f"{base}-{suffix}"
