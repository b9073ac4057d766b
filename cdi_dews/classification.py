"""
CDI classification.

Maps a Composite Drought Index value to one of five severity classes and
collapses those into the three escalation phases shown on the dashboard.
"""

# =============================
# Classes & phases
# =============================
EXTREME = "Extreme Drought"
SEVERE = "Severe Drought"
MODERATE = "Moderate Drought"
NORMAL = "Normal"
NO_DROUGHT = "No Drought"

WATCH = "Watch"
WARN = "Warn"
ALERT = "Alert"

# Upper bound (inclusive) of each class, ascending
THRESHOLDS = [
    (-1.5, EXTREME),
    (-1.0, SEVERE),
    (-0.5, MODERATE),
    (0.5, NORMAL),
]

CLASS_ORDER = [EXTREME, SEVERE, MODERATE, NORMAL, NO_DROUGHT]

CLASS_COLORS = {
    EXTREME: "#dc2626",
    SEVERE: "#f97316",
    MODERATE: "#eab308",
    NORMAL: "#22c55e",
    NO_DROUGHT: "#60a5fa",
}

PHASE_COLORS = {
    ALERT: "#dc2626",
    WARN: "#ea580c",
    WATCH: "#16a34a",
}

ESCALATED_PHASES = {WARN, ALERT}


# =============================
# Classifiers
# =============================
def classify(value: float) -> str:
    for upper, label in THRESHOLDS:
        if value <= upper:
            return label
    return NO_DROUGHT


def phase_of(severity: str) -> str:
    if severity == EXTREME:
        return ALERT
    if severity in (SEVERE, MODERATE):
        return WARN
    # Normal and No Drought both stay on Watch
    return WATCH


def assess(value: float) -> tuple:
    """Return ``(class, phase)`` for a CDI value."""
    severity = classify(value)
    return severity, phase_of(severity)


def is_escalated(phase: str) -> bool:
    return phase in ESCALATED_PHASES


def legend_items():
    """Ordered (label, colour) pairs, most severe first."""
    return [(label, CLASS_COLORS[label]) for label in CLASS_ORDER]
