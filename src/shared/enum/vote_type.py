from enum import Enum


class VoteType(str, Enum):
    """投票记录中保存的投票方向"""

    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class VoteAction(str, Enum):
    """投票接口接受的操作，cancel 不会落库"""

    UPVOTE = "upvote"
    DOWNVOTE = "downvote"
    CANCEL = "cancel"


class VoteState(str, Enum):
    """单个 (用户, 目标) 键的投票状态"""

    NO_VOTE = "NoVote"
    UPVOTED = "Upvoted"
    DOWNVOTED = "Downvoted"
