"""Remediation policies: ordered classification -> action rules."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .models import Action, Classification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyRule:
    """Apply ``action`` when the workload is classified as ``classification``."""
    classification: Classification
    action: Action

    @classmethod
    def parse(cls, text: str) -> "PolicyRule":
        """
        Parse a rule from ``Classification=Action``.

        Examples:
            "ResourceStarved=ReduceResourceFootprint"
            "Degraded=ExposeExternally"
        """
        if "=" not in text:
            raise ValueError(f"Invalid rule {text!r}, expected Classification=Action")

        left, right = (part.strip() for part in text.split("=", 1))
        try:
            classification = Classification(left)
        except ValueError:
            choices = ", ".join(c.value for c in Classification)
            raise ValueError(f"Unknown classification {left!r} (choose from {choices})") from None
        try:
            action = Action(right)
        except ValueError:
            choices = ", ".join(a.value for a in Action)
            raise ValueError(f"Unknown action {right!r} (choose from {choices})") from None

        if classification in (Classification.HEALTHY, Classification.FAILED, Classification.UNKNOWN):
            raise ValueError(f"No remediation can be attached to {classification.value}")

        return cls(classification=classification, action=action)

    def __str__(self) -> str:
        return f"{self.classification.value}={self.action.value}"


@dataclass
class Policy:
    """Ordered list of rules; the first rule matching a classification wins."""
    name: str
    rules: List[PolicyRule] = field(default_factory=list)

    def select(self, classification: Classification) -> Optional[Action]:
        """
        Find the action for a classification.

        Returns:
            The first matching rule's action, or None if no rule matches
        """
        for rule in self.rules:
            if rule.classification == classification:
                return rule.action
        return None

    def with_rules(self, rules: Iterable[PolicyRule]) -> "Policy":
        """Return a copy with ``rules`` evaluated before the existing ones."""
        return Policy(name=self.name, rules=list(rules) + list(self.rules))


_PRESETS: Dict[str, List[PolicyRule]] = {
    # Generic pending pods: shrink if starved, otherwise delete and let the
    # deployment recreate them.
    "pending-pods": [
        PolicyRule(Classification.RESOURCE_STARVED, Action.REDUCE_RESOURCE_FOOTPRINT),
        PolicyRule(Classification.IMAGE_ERROR, Action.FORCE_RESCHEDULE),
        PolicyRule(Classification.PENDING, Action.FORCE_RESCHEDULE),
    ],
    "resource-constraints": [
        PolicyRule(Classification.RESOURCE_STARVED, Action.REDUCE_RESOURCE_FOOTPRINT),
        PolicyRule(Classification.IMAGE_ERROR, Action.REBUILD_AND_RELOAD),
        PolicyRule(Classification.PENDING, Action.FORCE_RESCHEDULE),
    ],
    "flask-app": [
        PolicyRule(Classification.RESOURCE_STARVED, Action.REDUCE_RESOURCE_FOOTPRINT),
        PolicyRule(Classification.IMAGE_ERROR, Action.REBUILD_AND_RELOAD),
        PolicyRule(Classification.PENDING, Action.FORCE_RESCHEDULE),
    ],
}


def preset_names() -> List[str]:
    return sorted(_PRESETS)


def get_preset(name: str) -> Policy:
    """
    Get a built-in policy by name.

    Raises:
        KeyError: If no preset has that name
    """
    if name not in _PRESETS:
        raise KeyError(f"Unknown policy {name!r} (choose from {', '.join(preset_names())})")
    return Policy(name=name, rules=list(_PRESETS[name]))


def build_policy(preset: str, extra_rules: Iterable[str] = ()) -> Policy:
    """Build a policy from a preset plus ``Classification=Action`` strings."""
    policy = get_preset(preset)
    rules = [PolicyRule.parse(text) for text in extra_rules]
    if rules:
        policy = policy.with_rules(rules)
        logger.debug(f"Policy {policy.name} rules: {', '.join(str(r) for r in policy.rules)}")
    return policy
