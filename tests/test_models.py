from unittest import TestCase

from pydantic import ValidationError

from veritas.models import PipelineOutcome, StageOutcome


class TestStageOutcome(TestCase):
    def test_flags_follow_a_single_status(self):
        cases = {
            "succeeded": (True, False, False),
            "failed": (False, True, False),
            "skipped": (False, False, True),
        }
        for status, flags in cases.items():
            with self.subTest(status=status):
                outcome = StageOutcome(status=status)
                self.assertEqual((outcome.succeeded, outcome.failed, outcome.skipped), flags)

    def test_unknown_status_is_rejected(self):
        with self.assertRaises(ValidationError):
            StageOutcome(status="partially")

    def test_constructors_set_status(self):
        self.assertEqual(StageOutcome().status, "skipped")
        self.assertEqual(StageOutcome.success().status, "succeeded")

        failure = StageOutcome.failure("StorageFailure", "upload timed out")
        self.assertEqual(failure.status, "failed")
        self.assertEqual((failure.kind, failure.reason), ("StorageFailure", "upload timed out"))

    def test_serialized_outcome_carries_status_and_flags(self):
        data = StageOutcome.failure("ContentPolicyBlock", "blocked").model_dump(by_alias=True)

        self.assertEqual(data["status"], "failed")
        self.assertTrue(data["failed"])
        self.assertFalse(data["succeeded"])
        self.assertFalse(data["skipped"])

    def test_partial_means_text_without_stored_image(self):
        outcome = PipelineOutcome(text=StageOutcome.success(), image=StageOutcome.success())
        self.assertTrue(outcome.partial)

        outcome.storage = StageOutcome.success()
        self.assertFalse(outcome.partial)
