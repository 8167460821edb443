"""Classification engine.

Assigns one of three flags from a form's rule sets:

- Any failed security check makes the submission Red outright.
- Red rules are evaluated first; any match is Red.
- Otherwise Yellow rules, first match wins.
- Otherwise Green rules, first match wins.
- No match at all defaults to Yellow, so ambiguous data goes to manual
  review rather than full automation or an outright block.

The engine runs twice per submission (after intake, after enrichment). A
Red verdict from an earlier pass is never relaxed.
"""

import logging

from pydantic import BaseModel, Field

from src.classification.conditions import rule_matches
from src.models.enums import CheckStatus, ClassificationFlag, RoutingAction
from src.models.forms import FormDefinition
from src.models.submission import ProcessingContext

logger = logging.getLogger(__name__)

ROUTING_ACTIONS = {
    ClassificationFlag.GREEN: RoutingAction.ELOQUA_AND_BUILDER,
    ClassificationFlag.YELLOW: RoutingAction.ELOQUA_ONLY,
    ClassificationFlag.RED: RoutingAction.BLOCK,
}

DEFAULT_FLAG = ClassificationFlag.YELLOW
SECURITY_FAILURE_RULE = "security_check_failed"
PREVIOUS_RED_RULE = "previous_red_verdict"

# Tiers in evaluation order
TIER_ORDER = (
    ClassificationFlag.RED,
    ClassificationFlag.YELLOW,
    ClassificationFlag.GREEN,
)


def routing_action(flag: ClassificationFlag) -> RoutingAction:
    """Return the routing action a flag implies."""
    return ROUTING_ACTIONS[flag]


class ClassificationResult(BaseModel):
    """Flag assigned by one classification pass."""

    flag: ClassificationFlag = Field(..., description="Assigned flag")
    action: RoutingAction = Field(..., description="Routing implied by the flag")
    matched_rule: str | None = Field(
        default=None, description="Rule that decided the flag, if any"
    )
    defaulted: bool = Field(
        default=False, description="True when no rule matched"
    )

    @classmethod
    def for_flag(
        cls,
        flag: ClassificationFlag,
        matched_rule: str | None = None,
        defaulted: bool = False,
    ) -> "ClassificationResult":
        return cls(
            flag=flag,
            action=routing_action(flag),
            matched_rule=matched_rule,
            defaulted=defaulted,
        )


def _security_failed(context: ProcessingContext) -> bool:
    return any(
        outcome.status == CheckStatus.FAILED
        for outcome in context.outcomes("security.").values()
    )


class ClassificationEngine:
    """Evaluates form classification rules against a processing context."""

    def classify(
        self,
        definition: FormDefinition,
        context: ProcessingContext,
        previous: ClassificationFlag | None = None,
    ) -> ClassificationResult:
        """Classify a submission.

        Args:
            definition: Form whose rule sets apply.
            context: Signals accumulated so far.
            previous: Flag from an earlier pass, if any. Red is sticky.

        Returns:
            ClassificationResult with the flag and the rule that decided it.
        """
        if previous == ClassificationFlag.RED:
            return ClassificationResult.for_flag(
                ClassificationFlag.RED, matched_rule=PREVIOUS_RED_RULE
            )

        if _security_failed(context):
            return ClassificationResult.for_flag(
                ClassificationFlag.RED, matched_rule=SECURITY_FAILURE_RULE
            )

        for flag in TIER_ORDER:
            for rule in definition.classification.for_flag(flag):
                if rule_matches(rule, context):
                    logger.debug(
                        "Form %s rule %s matched: %s",
                        definition.form_id,
                        rule.name,
                        flag.value,
                    )
                    return ClassificationResult.for_flag(
                        flag, matched_rule=rule.name
                    )

        return ClassificationResult.for_flag(DEFAULT_FLAG, defaulted=True)
