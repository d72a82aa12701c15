"""
Quiz engine package.
"""
from .fuzzy import matches_answer, normalize, levenshtein
from .state import (
    BuzzerRound,
    DrawingPrompt,
    DrawingRound,
    FlagQuestion,
    QuizContent,
    QuizRoom,
    ReversedQuestion,
    TriviaQuestion,
)
from .engine import QuizEngine

__all__ = [
    "matches_answer",
    "normalize",
    "levenshtein",
    "BuzzerRound",
    "DrawingPrompt",
    "DrawingRound",
    "FlagQuestion",
    "QuizContent",
    "QuizRoom",
    "ReversedQuestion",
    "TriviaQuestion",
    "QuizEngine",
]
