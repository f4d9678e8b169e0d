"""
Profile lifecycle: locked read-modify-write and interview questions.
"""

from .manager import ProfileManager
from .questions import QUESTION_SETS, contextual_questions, next_question

__all__ = [
    "QUESTION_SETS",
    "ProfileManager",
    "contextual_questions",
    "next_question",
]
