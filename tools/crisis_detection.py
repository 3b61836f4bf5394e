"""Crisis Detection - Deterministic Safety Classifier

A priority-ordered rule engine over regex tiers:

    critical -> high -> medium -> low

The first tier with any match fixes the severity. Every match inside that
tier is recorded as a trigger; lower tiers are never evaluated, so a
critical phrase always dominates however many milder phrases appear.

Crisis replies come from `response_for` only. They are reviewed policy text
and are never produced by the language model.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Pattern, Tuple


class Severity(Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendedAction(Enum):
    CONTINUE = "continue"
    GENTLE_CHECK = "gentle_check"
    SAFETY_CHECK = "safety_check"
    CRISIS_MODE = "crisis_mode"


@dataclass(frozen=True)
class CrisisResult:
    """Ephemeral classification of a single message."""
    is_crisis: bool
    severity: Severity
    triggers: List[str] = field(default_factory=list)
    recommended_action: RecommendedAction = RecommendedAction.CONTINUE

    def to_dict(self) -> dict:
        return {
            "is_crisis": self.is_crisis,
            "severity": self.severity.value,
            "triggers": list(self.triggers),
            "recommended_action": self.recommended_action.value,
        }


def _compile(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


CRITICAL_PATTERNS = _compile(
    # Suicidal ideation
    r"\b(want(ing)? to (die|end it|kill myself)|suicid(e|al)|end my life|don'?t want to (live|be here|exist))\b",
    r"\b(better off (dead|without me)|no reason to (live|go on)|can'?t (go on|take it anymore))\b",
    r"\b(going to kill myself|planning to (end it|die|kill myself)|have a plan to)\b",
    r"\b(kill myself|killing myself)\b",
    # Self-harm
    r"\b(cut(ting)? myself|hurt(ing)? myself|self[- ]?harm|burn(ing)? myself)\b",
    r"\b(want to (hurt|cut|harm) myself)\b",
    # Imminent danger
    r"\b(going to do it (tonight|today|now)|this is (goodbye|the end)|final (message|goodbye))\b",
    r"\b(have (pills|gun|knife|rope) ready|wrote (a )?(suicide )?note)\b",
)

HIGH_PATTERNS = _compile(
    # Hopelessness
    r"\b(no (hope|point|way out)|hopeless|nothing (matters|will help))\b",
    r"\b(everyone would be better off|no one (cares|would miss me))\b",
    r"\b(can'?t see a (future|way forward)|trapped|no escape)\b",
    r"\b(no point (in|to) (going on|living|continuing))\b",
    r"\b(don'?t see (any|the) point)\b",
    # Severe distress
    r"\b(can'?t (breathe|function|cope)|falling apart|breaking down)\b",
    r"\b(unbearable|can'?t (stand|handle) (it|this|anymore))\b",
)

MEDIUM_PATTERNS = _compile(
    # Passive ideation
    r"\b(wish I (wasn'?t here|didn'?t exist|could disappear))\b",
    r"\b(don'?t (care|want to) wake up|sleep forever)\b",
    # Severe emotional distress
    r"\b(hate myself|worthless|disgusting|broken beyond repair)\b",
    r"\b(can'?t (do this|keep going|take (this|it)))\b",
)

LOW_PATTERNS = _compile(
    # General distress that warrants a gentle check
    r"\b(really (struggling|hurting)|in (a lot of )?pain)\b",
    r"\b(scared|terrified|panicking)\b",
    r"\b(alone|isolated|no one understands)\b",
)

# Evaluation order is the tie-break: highest severity first
SEVERITY_TIERS: List[Tuple[Severity, List[Pattern]]] = [
    (Severity.CRITICAL, CRITICAL_PATTERNS),
    (Severity.HIGH, HIGH_PATTERNS),
    (Severity.MEDIUM, MEDIUM_PATTERNS),
    (Severity.LOW, LOW_PATTERNS),
]

RECOMMENDED_ACTIONS = {
    Severity.NONE: RecommendedAction.CONTINUE,
    Severity.LOW: RecommendedAction.GENTLE_CHECK,
    Severity.MEDIUM: RecommendedAction.SAFETY_CHECK,
    Severity.HIGH: RecommendedAction.SAFETY_CHECK,
    Severity.CRITICAL: RecommendedAction.CRISIS_MODE,
}

CRISIS_SEVERITIES = {Severity.HIGH, Severity.CRITICAL}


def detect(message: str) -> CrisisResult:
    """Classify a message into a severity tier. Never raises."""
    text = message or ""
    for severity, patterns in SEVERITY_TIERS:
        triggers = []
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                triggers.append(match.group(0))
        if triggers:
            return CrisisResult(
                is_crisis=severity in CRISIS_SEVERITIES,
                severity=severity,
                triggers=triggers,
                recommended_action=RECOMMENDED_ACTIONS[severity],
            )

    return CrisisResult(is_crisis=False, severity=Severity.NONE)


CRITICAL_RESPONSE = """I'm really concerned about what you've shared. Your safety is the most important thing right now.

**Please reach out for immediate support:**

📞 **988 Suicide & Crisis Lifeline**
Call or text **988** (available 24/7)

🚨 **Emergency Services**
Call **911** if you're in immediate danger

💬 **Crisis Text Line**
Text **HOME** to **741741**

You don't have to face this alone. These services have trained counselors ready to help right now.

I'm here with you, but I want to make sure you have access to the specialized support you deserve. Will you reach out to one of these resources?"""

HIGH_RESPONSE = """I hear that you're going through something really painful right now. What you're feeling is serious, and I want to make sure you're safe.

**Support resources available 24/7:**

📞 **988 Suicide & Crisis Lifeline**: Call or text **988**
💬 **Crisis Text Line**: Text **HOME** to **741741**

These are free, confidential services with people who understand.

Can you tell me more about what's happening? And are you safe right now?"""

MEDIUM_RESPONSE = """I can sense you're carrying something heavy right now. I want you to know that what you're feeling matters, and you deserve support.

Before we continue, I want to check in: Are you having any thoughts of hurting yourself?

If you ever need immediate support:
📞 **988** - Suicide & Crisis Lifeline (call or text, 24/7)

I'm here to listen. What would feel most helpful right now?"""

LOW_RESPONSE = """I hear that you're really struggling right now. That takes courage to share.

I want to make sure I understand what you're going through. Can you tell me more about what's been happening?

And just so you know - if things ever feel too overwhelming, the 988 Lifeline is always available (call or text 988, 24/7)."""

_RESPONSES = {
    Severity.CRITICAL: CRITICAL_RESPONSE,
    Severity.HIGH: HIGH_RESPONSE,
    Severity.MEDIUM: MEDIUM_RESPONSE,
}


def response_for(severity: Severity) -> str:
    """Fixed, reviewed reply for a severity. Low and none get the gentle check-in."""
    return _RESPONSES.get(severity, LOW_RESPONSE)
