"""Grounded answers with verified citations."""

from codecite.answer.service import AskService
from codecite.answer.synthesizer import (
    NOT_ENOUGH_INFORMATION,
    AnswerPayload,
    AnswerSynthesizer,
    CitationPayload,
)

__all__ = [
    "NOT_ENOUGH_INFORMATION",
    "AnswerPayload",
    "AnswerSynthesizer",
    "AskService",
    "CitationPayload",
]
