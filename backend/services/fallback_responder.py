"""Canned replies used when the language model cannot answer in time."""
import re
from typing import Sequence

from models.session import USER, Message

NO_PROVIDER_REPLY = (
    "I'm here to help you explore your thoughts about climate change. "
    "Could you tell me more about your perspective?"
)
GIBBERISH_REPLY = (
    "I'd like to understand your perspective better. Could you share your thoughts "
    "about climate change in a way that helps me follow along?"
)
CONTROL_REPLY = "No problem at all. Is there anything else about climate change you'd like to explore or discuss?"
SHORT_REPLY = "I'd love to hear more about your thoughts. Could you elaborate on your perspective about climate change?"
OPENING_REPLY = "To start: could you describe what led you to change your mind about climate change?"

EARLY_REPLIES = (
    "That's helpful context. What specific experiences or information were most influential in shaping that view?",
    "I can see this is something you've thought about. Could you tell me more about what factors were most important to you?",
    "Thank you for sharing that perspective. Are there particular aspects of this issue that you find most compelling?",
)
LATER_REPLIES = (
    "That's a thoughtful point. How do you think others who disagree might respond to that argument?",
    "I appreciate you explaining your viewpoint. What questions do you think are most important to consider about this issue?",
    "That's interesting. How has your thinking evolved as you've learned more about this topic?",
    "Thank you for that insight. What would you say to someone who holds the opposite view?",
)

CONTROL_WORDS = (
    "nevermind", "never mind", "forget it", "skip", "next", "move on",
    "stop", "quit", "end", "done", "finished", "exit", "bye", "goodbye",
)

SHORT_INPUT_LENGTH = 10
EARLY_CONVERSATION_TURNS = 3

_SHORT_ANSWERS = re.compile(r"\b(yes|no|maybe|ok|sure)\b")
_REPEATED = re.compile(r"([a-z])\1{3,}|([a-z]{2,3})\2{2,}")
_CONSONANTS_ONLY = re.compile(r"^[bcdfghjklmnpqrstvwxyz\s]+$", re.IGNORECASE)
_COMMON_WORDS = re.compile(r"\bwhy\b", re.IGNORECASE)


def is_gibberish(text: str) -> bool:
    """Heuristic check for keysmashing or nonsense input."""
    text = text.lower().strip()
    if len(text) < 5 and not _SHORT_ANSWERS.search(text):
        return True
    if _REPEATED.search(text):
        return True
    if len(text) > 3 and _CONSONANTS_ONLY.match(text) and not _COMMON_WORDS.search(text):
        return True
    return False


_CONTROL = re.compile(r"\b(" + "|".join(re.escape(word) for word in CONTROL_WORDS) + r")\b")


def is_conversation_control(text: str) -> bool:
    return bool(_CONTROL.search(text.lower()))


def fallback_reply(messages: Sequence[Message]) -> str:
    """
    Pick a reply from the conversation so far without calling a model.

    The choice depends only on the messages, so the same history always
    gets the same reply.
    """
    user_messages = [m for m in messages if m.role == USER]
    if not user_messages:
        return NO_PROVIDER_REPLY

    user_input = (user_messages[-1].content or "").lower().strip()

    if is_gibberish(user_input):
        return GIBBERISH_REPLY
    if is_conversation_control(user_input):
        return CONTROL_REPLY
    if len(user_input) < SHORT_INPUT_LENGTH:
        return SHORT_REPLY

    turns = len(user_messages)
    if turns == 1:
        return OPENING_REPLY
    if turns <= EARLY_CONVERSATION_TURNS:
        return EARLY_REPLIES[turns % len(EARLY_REPLIES)]
    return LATER_REPLIES[turns % len(LATER_REPLIES)]
