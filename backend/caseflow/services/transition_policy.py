"""
Transition Policy.

Derives the stage a case moves to when a task is assigned. Task titles are
partly free text, so the rules are ordered keyword matches rather than a
strict dispatch on task type:

    site + (visit | inspection)  -> SITE_VISIT
    drawing | design             -> DRAWING
    quotation | boq              -> BOQ
    execution | install          -> EXECUTION_ACTIVE
    anything else                -> LEAD

Matching is case-insensitive substring matching and the first rule wins.
The current stage is accepted but not consulted: a stray site-visit task
can move an EXECUTION_ACTIVE case back to SITE_VISIT. A guarded policy can
replace ``KeywordTransitionPolicy`` without touching the engine.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

from ..models.enums import Stage, TaskType


TitleOrType = Union[str, TaskType, None]


def _text_of(value: TitleOrType) -> str:
    if value is None:
        return ""
    if isinstance(value, enum.Enum):
        value = value.value
    return str(value).lower()


@dataclass(frozen=True)
class TransitionRule:
    """
    Matches when every keyword group has at least one keyword in the text.

    ``(("site",), ("visit", "inspection"))`` reads "site AND (visit OR
    inspection)".
    """

    stage: Stage
    keyword_groups: Tuple[Tuple[str, ...], ...]

    def matches(self, text: str) -> bool:
        return all(any(keyword in text for keyword in group) for group in self.keyword_groups)


DEFAULT_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(Stage.SITE_VISIT, (("site",), ("visit", "inspection"))),
    TransitionRule(Stage.DRAWING, (("drawing", "design"),)),
    TransitionRule(Stage.BOQ, (("quotation", "boq"),)),
    TransitionRule(Stage.EXECUTION_ACTIVE, (("execution", "install"),)),
)


# =============================================================================
# Policy Interface
# =============================================================================

class TransitionPolicy(ABC):
    """Maps an assigned task to the case's next stage."""

    default_stage: Stage = Stage.LEAD

    @abstractmethod
    def match(self, title_or_type: TitleOrType, current_stage: Optional[Stage] = None) -> Optional[Stage]:
        """Return the stage a rule selects, or None if no rule applies."""

    def next_stage(self, title_or_type: TitleOrType, current_stage: Optional[Stage] = None) -> Stage:
        """Total: always returns a Stage, falling back to ``default_stage``."""
        stage = self.match(title_or_type, current_stage)
        return stage if stage is not None else self.default_stage


class KeywordTransitionPolicy(TransitionPolicy):
    """Ordered keyword rules over the task title (or type value)."""

    def __init__(self, rules: Sequence[TransitionRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def match(self, title_or_type: TitleOrType, current_stage: Optional[Stage] = None) -> Optional[Stage]:
        text = _text_of(title_or_type)
        if not text:
            return None
        for rule in self.rules:
            if rule.matches(text):
                return rule.stage
        return None


default_policy = KeywordTransitionPolicy()


def next_stage(title_or_type: TitleOrType, current_stage: Optional[Stage] = None) -> Stage:
    """``KeywordTransitionPolicy().next_stage`` with the default rules."""
    return default_policy.next_stage(title_or_type, current_stage)


# =============================================================================
# Task Typing
# =============================================================================

TASK_TYPE_RULES: Tuple[Tuple[TaskType, Tuple[Tuple[str, ...], ...]], ...] = (
    (TaskType.SITE_VISIT, (("site",), ("visit", "inspection"))),
    (TaskType.DRAWING_TASK, (("drawing", "design"),)),
    (TaskType.BOQ, (("boq", "bill of quantities"),)),
    (TaskType.QUOTATION_TASK, (("quotation", "quote"),)),
    (TaskType.PROCUREMENT_AUDIT, (("procurement", "audit"),)),
    (TaskType.EXECUTION_TASK, (("execution", "install"),)),
    (TaskType.REMINDER, (("remind", "follow up", "follow-up"),)),
)


def derive_task_type(title: Optional[str]) -> TaskType:
    """
    Derive a TaskType from a free-text title.

    Defaults to SALES_CONTACT, the type used for direct assignment.
    """
    text = _text_of(title)
    for task_type, groups in TASK_TYPE_RULES:
        if all(any(keyword in text for keyword in group) for group in groups):
            return task_type
    return TaskType.SALES_CONTACT
