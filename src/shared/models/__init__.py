from .question_tag_link import QuestionTagLink
from .tag import Tag
from .question import Question
from .answer import Answer
from .user import User
from .vote import Vote
from .vote_tally import VoteTally

# 这一行是为了让 SQLModel.metadata.create_all 能够发现所有模型
__all__ = [
    "QuestionTagLink",
    "Tag",
    "Question",
    "Answer",
    "User",
    "Vote",
    "VoteTally",
]
