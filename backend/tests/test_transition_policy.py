import unittest

from caseflow.models.enums import Stage, TaskType
from caseflow.services.transition_policy import (
    KeywordTransitionPolicy,
    TransitionPolicy,
    TransitionRule,
    derive_task_type,
    next_stage,
)


class NextStageTests(unittest.TestCase):
    def test_keyword_rules(self):
        self.assertEqual(next_stage("Site Inspection"), Stage.SITE_VISIT)
        self.assertEqual(next_stage("Schedule site visit with client"), Stage.SITE_VISIT)
        self.assertEqual(next_stage("Prepare 2D Drawing"), Stage.DRAWING)
        self.assertEqual(next_stage("Design review"), Stage.DRAWING)
        self.assertEqual(next_stage("Make Quotation"), Stage.BOQ)
        self.assertEqual(next_stage("Update BOQ"), Stage.BOQ)
        self.assertEqual(next_stage("Start execution"), Stage.EXECUTION_ACTIVE)
        self.assertEqual(next_stage("Install wardrobes"), Stage.EXECUTION_ACTIVE)

    def test_site_alone_is_not_a_site_visit(self):
        self.assertEqual(next_stage("Call about site address"), Stage.LEAD)

    def test_first_matching_rule_wins(self):
        self.assertEqual(next_stage("Site visit for drawing"), Stage.SITE_VISIT)
        self.assertEqual(next_stage("Design quotation"), Stage.DRAWING)

    def test_task_type_values_match_rules(self):
        self.assertEqual(next_stage(TaskType.SITE_VISIT), Stage.SITE_VISIT)
        self.assertEqual(next_stage(TaskType.DRAWING_TASK), Stage.DRAWING)
        self.assertEqual(next_stage(TaskType.QUOTATION_TASK), Stage.BOQ)
        self.assertEqual(next_stage(TaskType.EXECUTION_TASK), Stage.EXECUTION_ACTIVE)
        self.assertEqual(next_stage(TaskType.SALES_CONTACT), Stage.LEAD)

    def test_total_over_any_title_and_stage(self):
        titles = ["", "   ", None, "Follow up call", "???", "SITE", "x" * 500]
        for title in titles:
            for stage in list(Stage) + [None]:
                with self.subTest(title=title, stage=stage):
                    self.assertIsInstance(next_stage(title, stage), Stage)

    def test_current_stage_does_not_guard_regression(self):
        self.assertEqual(next_stage("Make Quotation", Stage.EXECUTION_ACTIVE), Stage.BOQ)
        self.assertEqual(next_stage("Site Inspection", Stage.COMPLETED), Stage.SITE_VISIT)


class CustomPolicyTests(unittest.TestCase):
    def test_custom_rules_replace_defaults(self):
        policy = KeywordTransitionPolicy([
            TransitionRule(Stage.QUOTATION, (("quote",),)),
        ])
        self.assertEqual(policy.next_stage("Send quote"), Stage.QUOTATION)
        self.assertEqual(policy.next_stage("Site Inspection"), Stage.LEAD)
        self.assertIsNone(policy.match("Site Inspection"))

    def test_guarded_policy_can_be_substituted(self):
        order = list(Stage)

        class MonotonicPolicy(KeywordTransitionPolicy):
            def match(self, title_or_type, current_stage=None):
                stage = super().match(title_or_type, current_stage)
                if stage is not None and current_stage is not None:
                    if order.index(stage) < order.index(current_stage):
                        return current_stage
                return stage

        policy = MonotonicPolicy()
        self.assertIsInstance(policy, TransitionPolicy)
        self.assertEqual(policy.next_stage("Make Quotation", Stage.EXECUTION_ACTIVE), Stage.EXECUTION_ACTIVE)
        self.assertEqual(policy.next_stage("Make Quotation", Stage.LEAD), Stage.BOQ)


class DeriveTaskTypeTests(unittest.TestCase):
    def test_titles(self):
        self.assertEqual(derive_task_type("Site Inspection"), TaskType.SITE_VISIT)
        self.assertEqual(derive_task_type("Kitchen design"), TaskType.DRAWING_TASK)
        self.assertEqual(derive_task_type("Prepare BOQ"), TaskType.BOQ)
        self.assertEqual(derive_task_type("Send quotation"), TaskType.QUOTATION_TASK)
        self.assertEqual(derive_task_type("Procurement audit"), TaskType.PROCUREMENT_AUDIT)
        self.assertEqual(derive_task_type("Install lights"), TaskType.EXECUTION_TASK)
        self.assertEqual(derive_task_type("Follow up with client"), TaskType.REMINDER)

    def test_default_is_sales_contact(self):
        self.assertEqual(derive_task_type("Call client"), TaskType.SALES_CONTACT)
        self.assertEqual(derive_task_type(None), TaskType.SALES_CONTACT)


if __name__ == "__main__":
    unittest.main()
