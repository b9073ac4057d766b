import pytest

from cdi_dews.classification import (ALERT, CLASS_COLORS, CLASS_ORDER, EXTREME, MODERATE,
                                     NO_DROUGHT, NORMAL, SEVERE, WARN, WATCH, assess,
                                     classify, is_escalated, legend_items, phase_of)


@pytest.mark.parametrize("value, expected", [
    (-3.0, EXTREME),
    (-1.5, EXTREME),
    (-1.49, SEVERE),
    (-1.0, SEVERE),
    (-0.99, MODERATE),
    (-0.5, MODERATE),
    (-0.49, NORMAL),
    (0.0, NORMAL),
    (0.5, NORMAL),
    (0.51, NO_DROUGHT),
    (2.5, NO_DROUGHT),
])
def test_classify_thresholds(value, expected):
    assert classify(value) == expected


@pytest.mark.parametrize("severity, phase", [
    (EXTREME, ALERT),
    (SEVERE, WARN),
    (MODERATE, WARN),
    (NORMAL, WATCH),
    (NO_DROUGHT, WATCH),
])
def test_phase_of(severity, phase):
    assert phase_of(severity) == phase


def test_assess_combines_class_and_phase():
    assert assess(-1.8) == (EXTREME, ALERT)
    assert assess(-1.2) == (SEVERE, WARN)
    assert assess(1.2) == (NO_DROUGHT, WATCH)


def test_only_warn_and_alert_escalate():
    assert is_escalated(WARN)
    assert is_escalated(ALERT)
    assert not is_escalated(WATCH)


def test_legend_lists_every_class_most_severe_first():
    items = legend_items()
    assert [label for label, _ in items] == CLASS_ORDER
    assert items[0] == (EXTREME, CLASS_COLORS[EXTREME])
