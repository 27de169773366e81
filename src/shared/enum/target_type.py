from enum import Enum


class TargetType(str, Enum):
    """可投票目标的类型"""

    QUESTION = "Question"
    ANSWER = "Answer"
