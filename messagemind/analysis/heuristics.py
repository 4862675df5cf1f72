"""Local heuristic engine: the fallback for every analysis capability.

Everything here is pure computation over message text. No network, no
randomness, and no input that makes it raise, so the analysis cascade can
always finish with a usable result.
"""

from __future__ import annotations

import re
import statistics
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from messagemind.models import (
    ConversationUnit,
    IntentStats,
    Message,
    MessageIntent,
    Priority,
    Sentiment,
)
from messagemind.providers.base import Capability

# -- Vocabulary ----------------------------------------------------------------

SUMMARY_FAMILIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Assistance request", ("help", "please", "can you", "could you")),
    ("Work discussion", ("meeting", "work", "project", "task")),
    ("Positive exchange", ("thanks", "thank you", "great", "awesome")),
    ("Problem solving", ("problem", "issue", "error", "fix")),
    ("Planning discussion", ("plan", "schedule", "time", "when")),
    ("Q&A session", ("question", "what", "how", "why")),
    ("Information sharing", ("update", "news", "info", "tell")),
)

# word -> weight
POSITIVE_WORDS: dict[str, int] = {
    "good": 1, "great": 2, "awesome": 2, "love": 2, "happy": 1, "thanks": 1,
    "thank": 1, "excellent": 2, "amazing": 2, "perfect": 2, "wonderful": 2,
    "lol": 1, "haha": 1, "yes": 1, "sure": 1, "okay": 1, "ok": 1, "nice": 1,
    "cool": 1, "fine": 1, "alright": 1, "exactly": 1, "correct": 1,
}
NEGATIVE_WORDS: dict[str, int] = {
    "bad": 1, "awful": 2, "hate": 2, "angry": 2, "sad": 1, "terrible": 2,
    "horrible": 2, "annoying": 1, "frustrated": 2, "upset": 2, "no": 1,
    "can't": 1, "won't": 1, "problem": 1, "issue": 1, "error": 1, "wrong": 1,
    "fail": 1, "difficult": 1, "hard": 1, "trouble": 1,
}
POSITIVE_EMOJI = ("😊", "😄", "👍", "❤️", "🙏", "🎉")
NEGATIVE_EMOJI = ("😭", "😔", "😡", "👎", "😞")

STOP_WORDS = frozenset(
    "the and or but in on at to for of with by is are was were be been have has had "
    "will would could should may might can do did does you he she it we they this "
    "that these those just not now get go see know think say come want like time way "
    "make look take use well also back after first new good high small large next "
    "early young important few public same able are you your yes".split()
)
NOISE_TOKENS = frozenset({"messagemind", "duckdns", "whatsapp", "matrix", "bridge", "bridged"})
IMPORTANT_TOPICS = frozenset({
    "work", "help", "meeting", "project", "question", "problem", "solution", "update",
    "plan", "task", "issue", "request", "support", "discussion", "planning",
    "development", "system", "application", "feature", "user", "data", "process",
})
TECH_MARKERS = ("app", "tech", "system")

URGENT_KEYWORDS = ("urgent", "emergency", "asap", "important", "critical", "immediately")
IMPERATIVE_PHRASES = (
    "need to", "please", "can you", "could you", "don't forget", "remember to",
    "make sure", "todo",
)

QUESTION_WORDS = (
    "what", "how", "when", "where", "why", "who", "which", "can", "could", "would",
    "will", "do", "does", "is", "are", "was", "were",
)


def _word_pattern(*words: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(words) + r")\b")


# pattern order breaks confidence ties
INTENT_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("question", re.compile(r"\?|^(?:" + "|".join(QUESTION_WORDS) + r")\b")),
    ("urgent", _word_pattern(
        "urgent", "asap", "emergency", "immediately", "now", "quick", "fast", "hurry",
        "important",
    )),
    ("request", _word_pattern(
        "please", "can you", "could you", "would you", "help", "need", "want", "require",
        "request",
    )),
    ("social", _word_pattern(
        "hello", "hi", "hey", "thanks", "thank you", "bye", "goodbye", "see you", "nice",
        "good", "great",
    )),
    ("business", _word_pattern(
        "meeting", "work", "project", "deadline", "client", "customer", "business",
        "professional",
    )),
    ("personal", _word_pattern(
        "family", "friend", "home", "personal", "private", "feel", "emotion", "love", "care",
    )),
)
INTENT_URGENCY = {"urgent": 0.8, "request": 0.3, "question": 0.2}
URGENCY_WORDS = ("urgent", "asap", "emergency", "immediately", "now", "quick", "fast")
NAME_PATTERN = re.compile(r"\b[A-Z][a-z]+\b")
TIME_PATTERN = re.compile(
    r"\b\d{1,2}:\d{2}\b|\b(?:today|tomorrow|yesterday|morning|afternoon|evening|night)\b",
    re.IGNORECASE,
)
ACTION_PATTERN = re.compile(
    r"\b(?:help|check|open|close|send|receive|meet|call|text|message)\b", re.IGNORECASE
)

MAX_TOPICS = 5
MAX_NOTES = 3


def _joined(messages: Sequence[Message]) -> str:
    return " ".join(m.content for m in messages).lower()


def _words(text: str) -> list[str]:
    return re.findall(r"[\w']+", text.lower())


# -- Summary -------------------------------------------------------------------


def summarize(messages: Sequence[Message]) -> str:
    """Describe the exchange by its dominant keyword family."""
    count = len(messages)
    participants = len({m.sender for m in messages})
    if count < 2:
        return "Brief conversation"

    text = _joined(messages)
    for label, keywords in SUMMARY_FAMILIES:
        if any(keyword in text for keyword in keywords):
            return f"{label} with {count} messages between {participants} participants"
    return f"General conversation with {count} messages between {participants} participants"


# -- Sentiment -----------------------------------------------------------------


def classify_sentiment(text: str) -> Sentiment:
    """Weighted keyword and emoji vote with contextual boosts."""
    lowered = text.lower()
    positive = 0
    negative = 0
    for word in _words(lowered):
        positive += POSITIVE_WORDS.get(word, 0)
        negative += NEGATIVE_WORDS.get(word, 0)
    positive += sum(lowered.count(e) for e in POSITIVE_EMOJI)
    negative += sum(lowered.count(e) for e in NEGATIVE_EMOJI)

    if "thank" in lowered and "help" in lowered:
        positive += 2
    if "sorry" in lowered and "problem" in lowered:
        negative += 1
    if any(w in lowered for w in ("solved", "fixed", "working")):
        positive += 1
    if any(w in lowered for w in ("broken", "failed")):
        negative += 1

    diff = positive - negative
    if diff > 1:
        return Sentiment.POSITIVE
    if diff < -1:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


# -- Topics --------------------------------------------------------------------


def _topic_weight(word: str) -> int:
    if word in IMPORTANT_TOPICS:
        return 5
    if any(marker in word for marker in TECH_MARKERS):
        return 3
    if len(word) > 8:
        return 3
    if len(word) > 6:
        return 2
    return 1


def extract_topics(text: str, limit: int = MAX_TOPICS) -> list[str]:
    """Top words by weighted frequency. Ties keep first-seen order."""
    tokens = re.sub(r"[^\w\s]", " ", text.lower()).split()
    scores: dict[str, int] = {}
    for word in tokens:
        if len(word) <= 2 or word.isdigit() or word in STOP_WORDS or word in NOISE_TOKENS:
            continue
        scores[word] = scores.get(word, 0) + _topic_weight(word)
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


# -- Patterns, insights, action items ------------------------------------------


def _gaps(messages: Sequence[Message]) -> list[float]:
    return [
        (b.timestamp - a.timestamp).total_seconds()
        for a, b in zip(messages, messages[1:], strict=False)
    ]


def find_patterns(messages: Sequence[Message]) -> list[str]:
    """Communication patterns from timing, turn-taking and questions."""
    patterns: list[str] = []
    if not messages:
        return patterns

    gaps = _gaps(messages)
    if gaps:
        median_gap = statistics.median(gaps)
        if median_gap < 60:
            patterns.append("Rapid back-and-forth exchange (replies usually within a minute)")
        elif median_gap > 15 * 60:
            patterns.append("Slow-paced exchange with long gaps between replies")
        if max(gaps) > 30 * 60:
            patterns.append("Conversation paused for over 30 minutes and then resumed")

    senders = Counter(m.sender for m in messages)
    if len(senders) > 1:
        top_sender, top_count = senders.most_common(1)[0]
        if top_count / len(messages) > 0.6:
            patterns.append(
                f"{top_sender} drove most of the conversation "
                f"({top_count} of {len(messages)} messages)"
            )
    else:
        patterns.append("Single participant posting without replies")

    questions = sum(1 for m in messages if "?" in m.content)
    if questions / len(messages) > 0.3:
        patterns.append("Question-driven exchange")

    return patterns[:MAX_NOTES]


def derive_insights(messages: Sequence[Message]) -> list[str]:
    """Volume, length and question statistics. Never empty for a non-empty unit."""
    if not messages:
        return ["No messages to analyze"]

    insights: list[str] = []
    count = len(messages)
    participants = len({m.sender for m in messages})
    minutes = int((messages[-1].timestamp - messages[0].timestamp).total_seconds() // 60)
    insights.append(
        f"{count} messages exchanged over {minutes} minutes between {participants} participants"
    )

    avg_length = sum(len(m.content) for m in messages) / count
    if avg_length > 100:
        insights.append(f"Messages are detailed (average {avg_length:.0f} characters)")
    elif avg_length < 20:
        insights.append(f"Short, conversational messages (average {avg_length:.0f} characters)")

    questions = sum(1 for m in messages if "?" in m.content)
    if questions:
        share = round(100 * questions / count)
        insights.append(f"{questions} question(s) asked ({share}% of messages)")

    return insights[:MAX_NOTES]


def extract_action_items(messages: Sequence[Message]) -> list[str]:
    """Messages phrased as requests or reminders."""
    items: list[str] = []
    for message in messages:
        lowered = message.content.lower()
        if not any(phrase in lowered for phrase in IMPERATIVE_PHRASES):
            continue
        text = " ".join(message.content.split())
        if len(text) > 100:
            text = text[:97].rstrip() + "..."
        item = f"{message.sender}: {text}"
        if item not in items:
            items.append(item)
        if len(items) >= MAX_NOTES:
            break
    return items


# -- Priority ------------------------------------------------------------------


def priority_score(messages: Sequence[Message], now: datetime | None = None) -> int:
    """Urgency score: keyword hits dominate, volume and questions add one each."""
    now = now or datetime.now(UTC)
    urgent_hits = sum(
        1 for m in messages for keyword in URGENT_KEYWORDS if keyword in m.content.lower()
    )
    question_marks = sum(m.content.count("?") for m in messages)
    recent = sum(1 for m in messages if timedelta(0) <= now - m.timestamp <= timedelta(hours=24))

    score = 2 * urgent_hits
    score += 1 if len(messages) > 20 else 0
    score += 1 if question_marks > 3 else 0
    score += 1 if recent > 10 else 0
    return score


def priority_from_score(score: int) -> Priority:
    if score >= 3:
        return Priority.HIGH
    if score >= 1:
        return Priority.MEDIUM
    return Priority.LOW


def estimate_priority(messages: Sequence[Message], now: datetime | None = None) -> Priority:
    return priority_from_score(priority_score(messages, now))


# -- Single messages -----------------------------------------------------------


def _intent_confidence(text: str, pattern: re.Pattern[str]) -> float:
    """0 when *pattern* misses *text*; otherwise 0.6 plus bonuses, capped at 1.

    Repeated matches, a first match in the opening 30% of the text and a
    text longer than 50 characters each add 0.1.
    """
    matches = list(pattern.finditer(text))
    if not matches:
        return 0.0
    confidence = 0.6
    if len(matches) > 1:
        confidence += 0.1
    if matches[0].start() < len(text) * 0.3:
        confidence += 0.1
    if len(text) > 50:
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def extract_entities(content: str) -> list[str]:
    """Capitalized names, clock times and day words, then action verbs."""
    # sentence-initial common words are capitalized too
    names = [
        word for word in NAME_PATTERN.findall(content)
        if word.lower() not in STOP_WORDS
        and word.lower() not in QUESTION_WORDS
        and not ACTION_PATTERN.fullmatch(word)
    ]
    times = [m.group(0) for m in TIME_PATTERN.finditer(content)]
    actions = [m.group(0) for m in ACTION_PATTERN.finditer(content)]
    return list(dict.fromkeys(names + times + actions))


def urgency_score(content: str, intent: str) -> float:
    """Urgency in [0, 1] from the intent, urgent words and emphatic punctuation."""
    words = set(_words(content))
    score = INTENT_URGENCY.get(intent, 0.0)
    score += 0.2 * sum(1 for keyword in URGENCY_WORDS if keyword in words)
    if "!" in content:
        score += 0.1
    if "??" in content:
        score += 0.2
    return min(round(score, 2), 1.0)


def detect_intent(content: str) -> MessageIntent:
    """Rule-based intent of one message.

    Every pattern in ``INTENT_PATTERNS`` is scored with
    ``_intent_confidence``; the best score above the 0.5 baseline wins and
    ties keep pattern order. No match means ``information``.
    """
    text = content.lower().strip()
    intent, confidence = "information", 0.5
    for name, pattern in INTENT_PATTERNS:
        score = _intent_confidence(text, pattern)
        if score > confidence:
            intent, confidence = name, score
    return MessageIntent(
        intent=intent,
        confidence=confidence,
        category=intent,
        entities=extract_entities(content),
        sentiment=classify_sentiment(content),
        urgency=urgency_score(content, intent),
    )


def intent_stats(intents: Sequence[MessageIntent]) -> IntentStats:
    """Distributions over a batch of intents. An empty batch averages to 0."""
    urgency = Counter({"low": 0, "medium": 0, "high": 0})
    for item in intents:
        if item.urgency < 0.3:
            urgency["low"] += 1
        elif item.urgency < 0.7:
            urgency["medium"] += 1
        else:
            urgency["high"] += 1
    average = statistics.fmean(i.confidence for i in intents) if intents else 0.0
    return IntentStats(
        total=len(intents),
        intent_distribution=dict(Counter(i.intent for i in intents)),
        average_confidence=round(average, 3),
        urgency_distribution=dict(urgency),
        sentiment_distribution=dict(Counter(i.sentiment.value for i in intents)),
    )


def message_priority(message: Message, now: datetime | None = None) -> float:
    """Attention score for a single message; recent urgent requests rank first."""
    now = now or datetime.now(UTC)
    content = message.content.lower()
    hours_since = (now - message.timestamp).total_seconds() / 3600

    score = max(0.0, 24 - hours_since) / 24 * 10
    if "?" in content:
        score += 5
    if "urgent" in content or "important" in content:
        score += 15
    if "please" in content or "help" in content:
        score += 8
    if len(content) > 100:
        score += 3
    return score


# -- Engine --------------------------------------------------------------------


class HeuristicEngine:
    """Capability-addressed front for the heuristic functions.

    ``now`` fixes the reference time used by recency rules; it defaults to
    the wall clock at evaluation time.
    """

    name = "heuristic"

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now

    def evaluate(self, capability: Capability, unit: ConversationUnit) -> Any:
        messages = unit.messages
        if capability is Capability.SUMMARIZE:
            return summarize(messages)
        if capability is Capability.SENTIMENT:
            return classify_sentiment(_joined(messages))
        if capability is Capability.TOPICS:
            return extract_topics(_joined(messages))
        if capability is Capability.INSIGHTS:
            return derive_insights(messages)
        if capability is Capability.PATTERNS:
            return find_patterns(messages)
        if capability is Capability.ACTION_ITEMS:
            return extract_action_items(messages)
        if capability is Capability.PRIORITY:
            return estimate_priority(messages, self._now)
        msg = f"No heuristic for capability '{capability}'"
        raise ValueError(msg)
