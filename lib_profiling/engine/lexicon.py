"""Built-in lexicons used by the metric extractor.

Keyword categories are named ``<trait>_high`` / ``<trait>_low`` for the
scored traits, plus cultural cue categories.  Terms may be single words or
short phrases; matching is case-insensitive on word boundaries.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Trait poles
# ---------------------------------------------------------------------------
TRAIT_KEYWORDS: dict[str, dict[str, tuple[str, ...]]] = {
    # Big Five
    "openness": {
        "high": ("creative", "curious", "innovative", "abstract", "imaginative", "artistic",
                 "unconventional", "explore", "idea", "ideas", "experiment"),
        "low": ("practical", "conventional", "routine", "traditional", "concrete", "usual"),
    },
    "conscientiousness": {
        "high": ("organized", "organised", "planned", "scheduled", "deadline", "checklist",
                 "systematic", "detail", "thorough", "on track"),
        "low": ("spontaneous", "flexible", "last-minute", "casual", "later", "whenever"),
    },
    "extraversion": {
        "high": ("excited", "energetic", "outgoing", "social", "party", "group", "team",
                 "collaborative", "let's"),
        "low": ("quiet", "reserved", "introspective", "alone", "independent", "solo"),
    },
    "agreeableness": {
        "high": ("please", "help", "support", "kind", "empathy", "understanding", "agree",
                 "compassionate", "thanks", "thank you"),
        "low": ("challenge", "disagree", "critical", "direct", "blunt", "wrong"),
    },
    "neuroticism": {
        "high": ("worry", "worried", "stress", "stressed", "anxious", "nervous", "concerned",
                 "uncertain", "overwhelmed"),
        "low": ("calm", "relaxed", "stable", "confident", "composed"),
    },
    # DISC
    "dominance": {
        "high": ("results", "achieve", "win", "goal", "target", "compete", "decide", "control"),
        "low": ("consider", "careful", "thoughtful", "cautious"),
    },
    "influence": {
        "high": ("enthusiasm", "inspire", "motivate", "persuade", "convince", "exciting", "fun"),
        "low": ("factual", "data", "evidence"),
    },
    "steadiness": {
        "high": ("consistent", "reliable", "patient", "supportive", "harmony", "steady"),
        "low": ("change", "adapt", "pivot", "fast", "quick", "asap"),
    },
    "compliance": {
        "high": ("accuracy", "accurate", "precise", "quality", "standard", "procedure", "compliant"),
        "low": ("approximate", "roughly", "generally", "estimate", "ballpark"),
    },
    # Emotional intelligence
    "self_awareness": {
        "high": ("i feel", "i realize", "i realise", "my strength", "my weakness", "aware", "reflect"),
        "low": ("not my fault", "no idea why"),
    },
    "self_regulation": {
        "high": ("calm down", "manage", "breathe", "collected", "step back"),
        "low": ("reactive", "impulsive", "furious", "fed up"),
    },
    "motivation": {
        "high": ("improve", "grow", "learn", "progress", "strive", "ambitious"),
        "low": ("don't care", "whatever", "doesn't matter", "pointless"),
    },
    "empathy": {
        "high": ("i understand", "you must feel", "that sounds difficult", "i see", "perspective"),
        "low": ("don't get", "don't see why", "not my problem"),
    },
    "social_skills": {
        "high": ("collaborate", "together", "partner", "coordinate", "facilitate"),
        "low": ("myself", "on my own"),
    },
}


# ---------------------------------------------------------------------------
# Cultural cues
# ---------------------------------------------------------------------------
CULTURAL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "self_reference": ("i", "me", "my", "mine", "myself", "i'm", "i'll", "i've"),
    "group_reference": ("we", "us", "our", "ours", "ourselves", "we're", "we'll", "team"),
    "achievement": ("win", "best", "beat", "succeed", "success", "ambitious", "top", "achieve"),
    "care": ("care", "wellbeing", "balance", "support", "help", "share", "fair"),
    "future_focus": ("plan", "long-term", "future", "next year", "roadmap", "invest", "strategy"),
    "present_focus": ("now", "today", "asap", "immediately", "right away", "this week"),
    "process": ("policy", "procedure", "rule", "rules", "process", "approval", "guideline", "compliance"),
    "technical": ("api", "database", "reconciliation", "ledger", "accrual", "audit", "deploy",
                  "schema", "invoice", "depreciation"),
    "hedging": ("perhaps", "maybe", "might", "could you", "would you", "possibly", "i wonder",
                "if possible"),
}


# ---------------------------------------------------------------------------
# Sentiment and register
# ---------------------------------------------------------------------------
POSITIVE_WORDS: frozenset[str] = frozenset({
    "great", "good", "thanks", "thank", "excellent", "awesome", "happy", "glad", "love",
    "perfect", "nice", "appreciate", "appreciated", "wonderful", "fantastic", "well",
    "congrats", "congratulations", "pleased", "excited",
})

NEGATIVE_WORDS: frozenset[str] = frozenset({
    "bad", "problem", "issue", "issues", "wrong", "late", "sorry", "unfortunately",
    "fail", "failed", "failure", "angry", "upset", "worried", "terrible", "awful",
    "delay", "delayed", "broken", "frustrated", "annoyed",
})

NEGATORS: frozenset[str] = frozenset({"not", "no", "never", "don't", "doesn't", "isn't", "wasn't", "can't"})

FORMAL_MARKERS: frozenset[str] = frozenset({
    "dear", "regards", "sincerely", "kindly", "please", "furthermore", "therefore",
    "however", "accordingly", "respectfully", "attached", "herewith", "pursuant",
})

INFORMAL_MARKERS: frozenset[str] = frozenset({
    "hey", "hi", "yeah", "yep", "nope", "lol", "btw", "gonna", "wanna", "cool",
    "ok", "okay", "thx", "pls", "u", "ur",
})


def trait_category(trait_id: str, pole: str) -> str:
    """Keyword category name for one pole of a scored trait."""
    return f"{trait_id}_{pole}"


def all_categories() -> dict[str, tuple[str, ...]]:
    """Every keyword category the extractor counts, by category name."""
    categories: dict[str, tuple[str, ...]] = {}
    for trait_id, poles in TRAIT_KEYWORDS.items():
        for pole, terms in poles.items():
            categories[trait_category(trait_id, pole)] = terms
    categories.update(CULTURAL_KEYWORDS)
    return categories
