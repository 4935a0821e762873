"""
Lexical heuristics shared by the conversation and canonicalization fallbacks.

These patterns are the deterministic path used whenever the completion
service is unavailable or returns something unusable.
"""
import re
from typing import List

# Base verbs recognised as "someone describing a task"
ACTION_VERBS = [
    "manage", "create", "write", "develop", "analyze", "review", "prepare",
    "coordinate", "communicate", "handle", "process", "maintain", "update",
    "design", "implement", "test", "support", "lead", "organize", "plan",
    "monitor", "research", "meet", "present", "report", "build", "schedule",
    "train", "evaluate", "assess", "document", "negotiate", "supervise",
    "collaborate", "facilitate",
]

# Transcript extraction also accepts everyday office verbs
EXTENDED_ACTION_VERBS = ACTION_VERBS + [
    "attend", "draft", "submit", "approve", "check", "verify", "send",
    "receive", "call", "email",
]

# Verbs a normalized statement may already start with
LEADING_VERBS = EXTENDED_ACTION_VERBS + [
    "perform", "conduct", "provide", "ensure", "establish", "identify",
    "determine", "assist", "oversee",
]


def _word_alternation(words: List[str]) -> str:
    return "|".join(re.escape(w) for w in words)


ACTION_VERB_PATTERN = re.compile(rf"\b({_word_alternation(ACTION_VERBS)})\b", re.IGNORECASE)
EXTENDED_VERB_PATTERN = re.compile(rf"\b({_word_alternation(EXTENDED_ACTION_VERBS)})\b", re.IGNORECASE)
LEADING_VERB_PATTERN = re.compile(rf"^({_word_alternation(LEADING_VERBS)})", re.IGNORECASE)

# Gerund forms of the extended verbs ("coordinating" -> "coordinate")
GERUND_PATTERN = re.compile(
    r"\b(managing|creating|writing|developing|analyzing|reviewing|preparing|"
    r"coordinating|communicating|handling|processing|maintaining|updating|"
    r"designing|implementing|testing|supporting|leading|organizing|planning|"
    r"monitoring|researching|meeting|presenting|reporting|building|scheduling|"
    r"training|evaluating|assessing|documenting|negotiating|supervising|"
    r"collaborating|facilitating|attending|drafting|submitting|approving|"
    r"checking|verifying|sending|receiving|calling|emailing)\b",
    re.IGNORECASE,
)

STOP_PATTERN = re.compile(
    r"\b(done|finished|that's all|that's it|nothing else|no more|complete|"
    r"that covers it|i think that's everything|that's everything|nothing more|"
    r"i'm good|im good|all done)\b",
    re.IGNORECASE,
)

CONFIRMATION_PATTERN = re.compile(
    r"\b(yes|yeah|yep|yup|correct|right|exactly|all of those|all of them|"
    r"i do those|i do all|those apply|that applies|those are right|all three|"
    r"all four|all of the above|definitely|absolutely|for sure)\b",
    re.IGNORECASE,
)

SEGMENT_SPLIT_PATTERN = re.compile(r"[,;.\n]+")

STOP_WORDS = frozenset([
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "into", "through", "during", "before",
    "after", "above", "below", "between", "under", "again", "further", "then",
    "once", "here", "there", "when", "where", "why", "how", "all", "each",
    "few", "more", "most", "other", "some", "such", "no", "nor", "not", "only",
    "own", "same", "so", "than", "too", "very", "just", "also", "now",
])


def word_count(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def split_segments(text: str) -> List[str]:
    """Split free text on commas, semicolons, periods and newlines, trimmed."""
    return [s.strip() for s in SEGMENT_SPLIT_PATTERN.split(text) if s.strip()]


def extract_keywords(text: str) -> List[str]:
    """Lowercase letter-only words longer than two characters, minus stop words."""
    cleaned = re.sub(r"[^a-z\s]", "", text.lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS]


def gerund_to_base(gerund: str) -> str:
    """Turn a matched gerund back into its base verb ("writing" -> "write")."""
    word = gerund.lower()
    if word.endswith("ing"):
        word = word[:-3]
    # doubled consonant ("submitting" -> "submit")
    if len(word) > 2 and word[-1] == word[-2] and word[-1] not in "aeiousl":
        word = word[:-1]
    irregular_e = {
        "manag", "creat", "writ", "analyz", "prepar", "coordinat", "communicat",
        "handl", "updat", "organiz", "schedul", "evaluat", "negotiat",
        "supervis", "collaborat", "facilitat", "approv", "receiv",
    }
    if word in irregular_e:
        word = word + "e"
    return word


def capitalize_first(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:]
