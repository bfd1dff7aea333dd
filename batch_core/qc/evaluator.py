# batch_core/qc/evaluator.py
"""
QC rule evaluator.

Maps a declared specification rule and an entered value to PASS / FAIL /
PENDING. Pure: no state, no I/O, identical inputs always give identical
output.

Only NUMERIC and PASS_FAIL results are graded here. TEXT and OPTION_LIST
results, and NUMERIC results whose rule defers to a person, stay PENDING until
a human judgment is recorded on the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Union

from django.core.exceptions import ImproperlyConfigured

from batch_core.choices import QcResultStatus, QcResultType, SpecRuleType

Number = Union[int, float, Decimal, str]


@dataclass(frozen=True)
class Evaluation:
    status: str
    fail_reason: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.status == QcResultStatus.PASS


PENDING = Evaluation(QcResultStatus.PENDING)
PASSED = Evaluation(QcResultStatus.PASS)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fmt(value: Optional[float]) -> str:
    """Render numbers the way operators read them: 10.0 -> '10', 9.5 -> '9.5'."""
    if value is None:
        return "not set"
    if value.is_integer():
        return str(int(value))
    return repr(value)


# ===============================================================
# NUMERIC rules
# ===============================================================

def _check_min(value: float, spec_min, spec_max, spec_target) -> Evaluation:
    if spec_min is not None and value >= spec_min:
        return PASSED
    return Evaluation(
        QcResultStatus.FAIL,
        f"Value {_fmt(value)} is below minimum {_fmt(spec_min)}",
    )


def _check_max(value: float, spec_min, spec_max, spec_target) -> Evaluation:
    if spec_max is not None and value <= spec_max:
        return PASSED
    return Evaluation(
        QcResultStatus.FAIL,
        f"Value {_fmt(value)} exceeds maximum {_fmt(spec_max)}",
    )


def _check_range(value: float, spec_min, spec_max, spec_target) -> Evaluation:
    if spec_min is None or spec_max is None:
        return PENDING
    if spec_min <= value <= spec_max:
        return PASSED
    return Evaluation(
        QcResultStatus.FAIL,
        f"Value {_fmt(value)} is outside range {_fmt(spec_min)}–{_fmt(spec_max)}",
    )


def _check_equal(value: float, spec_min, spec_max, spec_target) -> Evaluation:
    # Exact float equality, no tolerance.
    if spec_target is not None and value == spec_target:
        return PASSED
    return Evaluation(
        QcResultStatus.FAIL,
        f"Value {_fmt(value)} does not equal target {_fmt(spec_target)}",
    )


def _defer(value: float, spec_min, spec_max, spec_target) -> Evaluation:
    return PENDING


NUMERIC_RULES: Dict[str, Callable[..., Evaluation]] = {
    SpecRuleType.MIN: _check_min,
    SpecRuleType.MAX: _check_max,
    SpecRuleType.RANGE: _check_range,
    SpecRuleType.EQUAL: _check_equal,
    SpecRuleType.PASS_FAIL_ONLY: _defer,
    SpecRuleType.CUSTOM_TEXT: _defer,
}


# ===============================================================
# Result types
# ===============================================================

def _evaluate_pass_fail(rule_type, entered_value, spec_min, spec_max, spec_target) -> Evaluation:
    if entered_value == QcResultStatus.PASS:
        return PASSED
    if entered_value == QcResultStatus.FAIL:
        return Evaluation(QcResultStatus.FAIL, "Manual fail selection")
    return PENDING


def _evaluate_numeric(rule_type, entered_value, spec_min, spec_max, spec_target) -> Evaluation:
    value = _to_float(entered_value)
    if value is None or not rule_type:
        return PENDING

    rule = NUMERIC_RULES.get(rule_type)
    if rule is None:
        return PENDING

    return rule(value, _to_float(spec_min), _to_float(spec_max), _to_float(spec_target))


def _evaluate_manual(rule_type, entered_value, spec_min, spec_max, spec_target) -> Evaluation:
    return PENDING


RESULT_TYPE_HANDLERS: Dict[str, Callable[..., Evaluation]] = {
    QcResultType.PASS_FAIL: _evaluate_pass_fail,
    QcResultType.NUMERIC: _evaluate_numeric,
    QcResultType.TEXT: _evaluate_manual,
    QcResultType.OPTION_LIST: _evaluate_manual,
}


def _assert_complete(table: Dict[str, Any], enum_cls, name: str) -> None:
    missing = sorted(set(enum_cls.values) - set(table))
    if missing:
        raise ImproperlyConfigured(f"{name} does not handle: {', '.join(missing)}")


_assert_complete(NUMERIC_RULES, SpecRuleType, "NUMERIC_RULES")
_assert_complete(RESULT_TYPE_HANDLERS, QcResultType, "RESULT_TYPE_HANDLERS")


# ===============================================================
# Public API
# ===============================================================

def evaluate(
    result_type: str,
    rule_type: Optional[str],
    entered_value: Any,
    spec_min: Optional[Number] = None,
    spec_max: Optional[Number] = None,
    spec_target: Optional[Number] = None,
) -> Evaluation:
    """
    Evaluate one entered value against its specification rule.

    Unknown result types or rule combinations give PENDING; this function
    never reports PASS for something it cannot grade.
    """
    handler = RESULT_TYPE_HANDLERS.get(result_type)
    if handler is None:
        return PENDING
    return handler(rule_type, entered_value, spec_min, spec_max, spec_target)


def requires_judgment(result_type: str, rule_type: Optional[str]) -> bool:
    """True when the evaluator defers this line to a human PASS/FAIL call."""
    if result_type in (QcResultType.TEXT, QcResultType.OPTION_LIST):
        return True
    if result_type == QcResultType.NUMERIC:
        return rule_type in (SpecRuleType.PASS_FAIL_ONLY, SpecRuleType.CUSTOM_TEXT)
    return False


def entered_value_of(result) -> Any:
    """The populated value column for a result, chosen by its result type."""
    if result.result_type == QcResultType.NUMERIC:
        return result.numeric_value
    if result.result_type == QcResultType.PASS_FAIL:
        return result.pass_fail_value
    if result.result_type == QcResultType.OPTION_LIST:
        return result.selected_option
    return result.text_value


def derive_status(result) -> Evaluation:
    """
    Re-derive the status a stored result must carry.

    A recorded human judgment wins; otherwise the evaluator decides from the
    snapshotted rule and the entered value.
    """
    if result.judgment:
        if result.judgment == QcResultStatus.FAIL:
            return Evaluation(QcResultStatus.FAIL, result.judgment_reason or "Failed by reviewer judgment")
        return Evaluation(result.judgment)

    return evaluate(
        result.result_type,
        result.spec_rule_type,
        entered_value_of(result),
        result.spec_min,
        result.spec_max,
        result.spec_target,
    )
