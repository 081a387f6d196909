"""Player message analysis.

analyze() turns raw player text into a PlayerMessageAnalysis:

  1. Normalise to lowercase (the original text is kept for display/logging).
  2. Intents         every matching intent is kept, in dictionary order.
  3. Emotional tone  tiered positive/negative lexicons, then anxious /
                     confused / curious markers when no polarity wins.
  4. Mentions        companions by id or trigger keyword; landmarks by name,
                     id or theme.
  5. Topics          every topic with at least one keyword hit.
  6. Complexity, urgency, conversation style.
  7. Information needs and expertise needed.
  8. Edge cases      degenerate input, shouting, code, sarcasm, crisis.

The function is pure: it reads the world configuration and never mutates
anything. It never raises for any input; unmatched text yields empty lists
and neutral defaults. Crisis detection runs on its own pattern so that no
other classification path can suppress it.
"""

from __future__ import annotations

import re
from collections import Counter
from functools import lru_cache

from sanctuary.models import CRISIS_FLAG, PlayerMessageAnalysis
from sanctuary.world import World

# ---------------------------------------------------------------------------
# Dictionaries
# ---------------------------------------------------------------------------

# intent -> (keywords, fallback pattern)
INTENT_PATTERNS: dict[str, tuple[tuple[str, ...], str]] = {
    "greeting": (
        ("hi", "hello", "hey", "greetings", "good morning", "good afternoon",
         "good evening", "howdy", "what's up"),
        r"^\s*(hi|hello|hey|yo|greetings?|good\s+(morning|afternoon|evening|day))\b",
    ),
    "farewell": (
        ("bye", "goodbye", "see you", "farewell", "gotta go", "good night"),
        r"\b(talk\s+to\s+you\s+later|see\s+ya|i\s+must\s+leave|time\s+to\s+go)\b",
    ),
    "informational": (
        ("what", "when", "where", "who", "why", "how", "explain", "tell me",
         "describe", "information"),
        r"\b(know\s+about|what\s+is|how\s+does)\b",
    ),
    "navigational": (
        ("go", "move", "travel", "visit", "explore", "journey", "direction",
         "map", "location", "landmark"),
        r"\b(go\s+to|move\s+to|where\s+is|how\s+to\s+get|take\s+me)\b",
    ),
    "emotional": (
        ("feel", "feeling", "emotion", "mood", "sad", "happy", "angry", "anxious",
         "depressed", "excited", "scared", "worried", "stressed", "overwhelmed"),
        r"\bfeel(s|ing)?\b",
    ),
    "help": (
        ("help", "assist", "support", "problem", "issue", "stuck", "confused",
         "lost", "guide", "advice"),
        r"\b(don't\s+understand|need\s+help|don't\s+know\s+what\s+to\s+do)\b",
    ),
    "philosophical": (
        ("meaning", "purpose", "life", "existence", "reality", "truth",
         "philosophy", "believe", "think", "wonder", "consciousness", "universe"),
        r"\b(meaning\s+of|why\s+do\s+we|what\s+is\s+the\s+point)\b",
    ),
    "casual": (
        ("chat", "talk", "conversation", "discuss", "random", "bored", "fun",
         "interesting"),
        r"\btell\s+me\s+something\b",
    ),
    "feedback": (
        ("good", "bad", "great", "terrible", "awesome", "amazing", "horrible",
         "dislike", "love", "hate", "excellent", "poor"),
        r"\bi\s+(really\s+)?(like|love|hate)\s+(this|that|it)\b",
    ),
    "technical": (
        ("system", "function", "mechanism", "process", "algorithm", "method",
         "technique"),
        r"\bhow\s+does\s+.+\s+work\b",
    ),
    "story": (
        ("story", "tale", "narrative", "history", "past", "remember", "memory",
         "experience"),
        r"\btell\s+me\s+about\b",
    ),
    "preference": (
        ("prefer", "favorite", "favourite", "best", "worst", "rather", "choose"),
        r"\b(like\s+better|would\s+you\s+rather)\b",
    ),
    "agreement": (
        ("yes", "yeah", "yep", "sure", "okay", "agree", "correct", "absolutely",
         "definitely", "of course"),
        r"^\s*(right|exactly)\b",
    ),
    "disagreement": (
        ("no", "nope", "disagree", "wrong", "incorrect", "false", "not really",
         "doubt"),
        r"\bdon't\s+think\s+so\b",
    ),
    "clarification": (
        ("clarify", "elaborate", "confusing", "explain more"),
        r"\b(what\s+do\s+you\s+mean|what\s+did\s+you\s+mean|don't\s+understand)\b",
    ),
}

# tier -> (keywords, intensity, sentiment weight)
POSITIVE_TIERS: dict[str, tuple[tuple[str, ...], int, float]] = {
    "strong": (("amazing", "wonderful", "fantastic", "excellent", "love",
                "ecstatic", "thrilled"), 9, 0.8),
    "moderate": (("happy", "good", "nice", "pleased", "content", "satisfied",
                  "glad"), 7, 0.5),
    "mild": (("okay", "fine", "alright", "decent", "not bad"), 5, 0.2),
}

NEGATIVE_TIERS: dict[str, tuple[tuple[str, ...], int, float]] = {
    "strong": (("terrible", "horrible", "awful", "hate", "furious", "devastated",
                "miserable", "hopeless"), 9, 0.8),
    "moderate": (("sad", "upset", "angry", "frustrated", "disappointed", "annoyed",
                  "worried", "lonely"), 7, 0.5),
    "mild": (("concerned", "unsure", "uncomfortable", "uneasy", "tired"), 5, 0.2),
}

# tone -> (marker pattern, intensity, sentiment)
SECONDARY_TONES: dict[str, tuple[str, int, float]] = {
    "anxious": (r"\b(anxious|anxiety|nervous|stressed|panic\w*|overwhelmed|scared|afraid)\b", 7, -0.3),
    "confused": (r"\b(confused|confusing|lost|don't\s+understand|unclear|puzzled)\b", 6, -0.1),
    "curious": (r"\b(curious|wonder\w*|interested|intrigued)\b", 6, 0.2),
}

BASELINE_INTENSITY = 5

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "emotional_support": ("feeling", "emotion", "mood", "support", "help me", "comfort"),
    "exploration": ("explore", "discover", "find", "search", "look for"),
    "philosophy": ("meaning", "purpose", "existence", "truth", "reality", "consciousness"),
    "creativity": ("create", "imagine", "design", "art", "music"),
    "memories": ("remember", "memory", "past", "history", "story"),
    "relationships": ("friend", "companion", "together", "relationship", "family"),
    "personal_growth": ("learn", "grow", "improve", "better", "change"),
    "problem_solving": ("solve", "fix", "solution", "problem", "issue"),
    "meditation": ("meditate", "meditation", "calm", "peace", "relax", "mindfulness"),
    "nature": ("nature", "crystal", "garden", "forest", "water", "trees"),
}

URGENT_KEYWORDS = ("urgent", "emergency", "immediately", "right now", "asap", "hurry", "crisis")
HIGH_KEYWORDS = ("important", "need", "must", "have to", "critical")
LOW_KEYWORDS = ("whenever", "no rush", "when you can", "eventually")

STYLE_MARKERS: dict[str, tuple[str, ...]] = {
    "formal": ("please", "thank you", "excuse me", "pardon", "kindly", "would you"),
    "casual": ("hey", "yeah", "gonna", "wanna", "kinda", "sorta", "lol", "btw"),
    "technical": ("algorithm", "system", "process", "function", "mechanism", "technical"),
    "emotional": ("feel", "feeling", "emotion", "heart", "soul"),
}

INFO_NEEDS: dict[str, tuple[str, ...]] = {
    "location": ("where", "location", "place", "direction", "map"),
    "explanation": ("what", "explain", "describe", "definition", "means"),
    "guidance": ("how", "can i", "should i", "help me", "guide", "what to do"),
    "understanding": ("why", "reason", "meaning", "purpose", "because"),
    "validation": ("right", "correct", "true", "valid"),
    "options": ("choices", "options", "alternatives", "possibilities"),
    "recommendation": ("suggest", "recommend", "advice", "best", "should"),
    "confirmation": ("confirm", "verify", "check", "sure", "certain"),
}

EXPERTISE_NEEDS: dict[str, tuple[str, ...]] = {
    "emotional_intelligence": ("feeling", "emotion", "mood", "anxiety", "anxious",
                               "depression", "depressed", "stress", "stressed", "sad"),
    "guidance": ("help", "support", "guide", "advice", "suggest"),
    "philosophical": ("meaning", "purpose", "existence", "philosophy", "truth"),
    "ethical_guidance": ("ethics", "ethical", "moral", "right thing"),
    "technical": ("system", "function", "mechanism", "process"),
    "creative": ("create", "imagine", "art", "music", "design"),
    "analytical": ("analyze", "analyse", "understand", "explain", "reason", "logic"),
    "narrative": ("story", "tale", "history", "memory", "experience"),
    "spiritual_guidance": ("spiritual", "spirit", "soul", "energy", "ritual", "chakra", "tarot"),
    "trauma_healing": ("trauma", "grief", "abuse", "loss"),
}

QUESTION_START = re.compile(
    r"^\s*(what|when|where|who|why|how|is|are|can|could|would|should|do|does|did)\b"
)
QUESTION_COUNT = re.compile(r"\?")
CLAUSE_MARKERS = re.compile(r",|;|\b(and|but|or|because|although|however|while|since)\b")

SYMBOLS_ONLY = re.compile(r"[\W_]+")
REPEATED_CHARACTER = re.compile(r"(.)\1{4,}")
NON_ASCII = re.compile(r"[^\x00-\x7F]")
SARCASM = re.compile(r"\b(yeah\s+right|sure\s+thing|oh\s+great|just\s+perfect|thanks\s+a\s+lot)\b|wonderful\s+\(not\)")
CODE_SYNTAX = re.compile(
    r"function\s*\(|\bvar\s|\bconst\s|\bif\s*\(|\bfor\s*\(|[{}]|</?\w+>|\bdef\s+\w+\(|\bimport\s+\w+"
)
CRISIS = re.compile(
    r"\b(suicid\w*|self[\s-]?harm\w*|kill(ing)?\s+myself|end\s+it\s+all|end\s+my\s+life"
    r"|want\s+to\s+die|don't\s+want\s+to\s+(live|be\s+alive)|hurt(ing)?\s+myself)\b"
)


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------

@lru_cache(maxsize=2048)
def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])")


def has_phrase(lower: str, phrase: str) -> bool:
    """Whole-word / whole-phrase match on already-lowercased text."""
    return _phrase_pattern(phrase.lower()).search(lower) is not None


def _any_phrase(lower: str, phrases) -> bool:
    return any(has_phrase(lower, p) for p in phrases)


def _normalise(raw) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw if isinstance(raw, str) else str(raw)


def _lower(text: str) -> str:
    return text.lower().replace("’", "'").replace("‘", "'")


# ---------------------------------------------------------------------------
# Analysis steps
# ---------------------------------------------------------------------------

def detect_intents(lower: str) -> list[str]:
    return [
        intent
        for intent, (keywords, pattern) in INTENT_PATTERNS.items()
        if _any_phrase(lower, keywords) or re.search(pattern, lower)
    ]


def detect_tone(lower: str) -> tuple[str, int, float]:
    """Return (tone, intensity 0–10, sentiment -1..1)."""
    intensity = BASELINE_INTENSITY
    sentiment = 0.0
    positive = negative = 0

    for keywords, tier_intensity, weight in POSITIVE_TIERS.values():
        for word in keywords:
            if has_phrase(lower, word):
                positive += 1
                intensity = max(intensity, tier_intensity)
                sentiment += weight
    for keywords, tier_intensity, weight in NEGATIVE_TIERS.values():
        for word in keywords:
            if has_phrase(lower, word):
                negative += 1
                intensity = max(intensity, tier_intensity)
                sentiment -= weight

    if positive > negative:
        tone = "positive"
    elif negative > positive:
        tone = "negative"
    else:
        tone = "neutral"
        for candidate, (pattern, marker_intensity, marker_sentiment) in SECONDARY_TONES.items():
            if re.search(pattern, lower):
                tone = candidate
                intensity = max(intensity, marker_intensity)
                if positive == negative == 0:
                    sentiment = marker_sentiment
                break

    hits = max(1, positive + negative)
    sentiment = max(-1.0, min(1.0, sentiment / hits))
    return tone, min(intensity, 10), round(sentiment, 3)


def detect_companion_mentions(lower: str, world: World) -> list[str]:
    return [
        c.id
        for c in world.companions
        if c.id.lower() in lower or _any_phrase(lower, c.triggers.keywords)
    ]


def detect_landmark_mentions(lower: str, world: World) -> list[str]:
    """Landmarks named by full name, id, a configured alias or a theme."""
    mentioned = []
    for lm in world.landmarks:
        name = lm.name.lower()
        if name.startswith("the "):
            name = name[4:]
        names = (name, lm.id.replace("_", " "))
        if (
            any(n in lower for n in names)
            or _any_phrase(lower, lm.aliases)
            or any(theme.lower() in lower for theme in lm.themes)
        ):
            mentioned.append(lm.id)
    return mentioned


def detect_topics(lower: str) -> list[str]:
    return [topic for topic, keywords in TOPIC_KEYWORDS.items() if _any_phrase(lower, keywords)]


def classify_complexity(
    text: str, word_count: int, topic_count: int, intent_count: int
) -> str:
    score = 0
    if word_count > 20:
        score += 2
    elif word_count > 10:
        score += 1

    questions = len(QUESTION_COUNT.findall(text))
    if questions > 1:
        score += 2
    elif questions == 1:
        score += 1

    if topic_count > 2:
        score += 2
    elif topic_count > 1:
        score += 1

    if intent_count > 2:
        score += 2
    elif intent_count > 1:
        score += 1

    if CLAUSE_MARKERS.search(text.lower()):
        score += 1

    if score >= 6:
        return "complex"
    if score >= 3:
        return "moderate"
    return "simple"


def classify_urgency(lower: str, intensity: int) -> str:
    if _any_phrase(lower, URGENT_KEYWORDS):
        return "urgent"
    if _any_phrase(lower, HIGH_KEYWORDS):
        return "high"
    if _any_phrase(lower, LOW_KEYWORDS):
        return "low"
    if intensity >= 8:
        return "high"
    return "normal"


def classify_style(text: str, lower: str) -> str:
    scores = Counter({style: 0 for style in STYLE_MARKERS})
    for style, markers in STYLE_MARKERS.items():
        scores[style] += sum(1 for m in markers if has_phrase(lower, m))
    stripped = text.strip()
    if stripped and stripped[0].isupper() and stripped.endswith("."):
        scores["formal"] += 1

    best = max(scores.values())
    if best == 0:
        return "neutral"
    # first style in marker order wins a tie
    return next(style for style in STYLE_MARKERS if scores[style] == best)


def detect_info_needs(lower: str, intents: list[str]) -> list[str]:
    needs = [need for need, keywords in INFO_NEEDS.items() if _any_phrase(lower, keywords)]
    if "greeting" in intents:
        needs.append("greeting")
    return needs


def detect_expertise_needed(lower: str) -> list[str]:
    return [tag for tag, keywords in EXPERTISE_NEEDS.items() if _any_phrase(lower, keywords)]


def detect_crisis(lower: str) -> bool:
    """Self-harm language. Independent of every other classifier."""
    return CRISIS.search(lower) is not None


def detect_edge_cases(text: str, lower: str, intents: list[str]) -> list[str]:
    flags: list[str] = []
    stripped = text.strip()

    if len(stripped) < 3:
        flags.append("minimal_input")
    if stripped and SYMBOLS_ONLY.fullmatch(stripped):
        flags.append("symbols_only")
    if REPEATED_CHARACTER.search(text):
        flags.append("repetitive_characters")
    if len(text) > 5 and text == text.upper() and any(ch.isalpha() for ch in text):
        flags.append("all_caps")
    if NON_ASCII.search(text):
        flags.append("non_ascii_characters")
    if "greeting" in intents and "farewell" in intents:
        flags.append("contradictory_intents")
    if SARCASM.search(lower):
        flags.append("potential_sarcasm")
    if CODE_SYNTAX.search(text):
        flags.append("code_syntax")
    if detect_crisis(lower):
        flags.append(CRISIS_FLAG)
    return flags


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze(raw_text, world: World) -> PlayerMessageAnalysis:
    """Analyse one player message. Pure and total: never raises."""
    text = _normalise(raw_text)
    lower = _lower(text)
    words = text.split()

    intents = detect_intents(lower)
    tone, intensity, sentiment = detect_tone(lower)
    topics = detect_topics(lower)

    return PlayerMessageAnalysis(
        original=text,
        intents=intents,
        topics=topics,
        mentioned_companions=detect_companion_mentions(lower, world),
        mentioned_landmarks=detect_landmark_mentions(lower, world),
        emotional_tone=tone,
        emotional_intensity=intensity,
        sentiment=sentiment,
        is_question="?" in text or QUESTION_START.search(lower) is not None,
        info_needs=detect_info_needs(lower, intents),
        expertise_needed=detect_expertise_needed(lower),
        conversation_style=classify_style(text, lower),
        urgency=classify_urgency(lower, intensity),
        complexity=classify_complexity(text, len(words), len(topics), len(intents)),
        word_count=len(words),
        edge_cases=detect_edge_cases(text, lower, intents),
    )
