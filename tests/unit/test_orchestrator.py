"""
Unit test file.
"""

import unittest

from s3copy_api import (
    CommittedPart,
    CopyOptions,
    CopyOrchestrator,
    CopyStrategyKind,
    CopyVerificationError,
    ObjectDeleteError,
    ObjectLocator,
    ObjectNotFoundError,
    PartTransferError,
    PlanningError,
    SameObjectError,
    SessionFinalizeError,
    SessionOpenError,
)
from s3copy_api.fakes.memory_backend import InMemoryBackend, service_error

MiB = 1024 * 1024

SRC = ObjectLocator(domain="us-east-1", bucket="src", key="archive/data.tar")
DST_SAME = ObjectLocator(domain="us-east-1", bucket="dst", key="copy/data.tar")
DST_OTHER = ObjectLocator(domain="ap-southeast-2", bucket="far", key="copy/data.tar")
PAYLOAD = bytes((i * 31 + 7) % 256 for i in range(10_000))


def _make_backend(payload: bytes = PAYLOAD) -> InMemoryBackend:
    backend = InMemoryBackend(
        {"src": "us-east-1", "dst": "us-east-1", "far": "ap-southeast-2"}
    )
    backend.put_object(SRC, payload)
    return backend


def _options(**kwargs) -> CopyOptions:
    kwargs.setdefault("part_size", 1024)
    kwargs.setdefault("retry_backoff", 0)
    return CopyOptions(**kwargs)


class _TruncatingBackend(InMemoryBackend):
    def complete_session(
        self, destination: ObjectLocator, upload_id: str, parts: list[CommittedPart]
    ) -> None:
        super().complete_session(destination, upload_id, parts)
        data = self.get_object(destination)
        assert data is not None
        self.put_object(destination, data[:-1])


class CopyOrchestratorTester(unittest.TestCase):
    """Test the copy and rename entry points."""

    def setUp(self) -> None:
        self.backend = _make_backend()
        self.orchestrator = CopyOrchestrator(self.backend)

    def _assert_no_session_left(self) -> None:
        self.assertEqual(self.backend.open_sessions(), [])

    def test_same_region_round_trip(self) -> None:
        err = self.orchestrator.copy(SRC, DST_SAME, _options())
        self.assertIsNone(err)
        self.assertEqual(self.backend.get_object(DST_SAME), PAYLOAD)
        result = self.orchestrator.last_result
        assert result is not None
        self.assertEqual(result.strategy, CopyStrategyKind.SERVER_SIDE)
        self.assertEqual(len(result.parts), 10)
        assert result.plan is not None
        self.assertEqual(result.plan.part_count, len(result.parts))
        self.assertEqual(self.backend.count("read_range"), 0)
        self.assertEqual(self.backend.count("complete_session"), 1)
        self.assertEqual(self.backend.count("abort_session"), 0)
        self._assert_no_session_left()

    def test_cross_region_round_trip(self) -> None:
        err = self.orchestrator.copy(SRC, DST_OTHER, _options(concurrency=3))
        self.assertIsNone(err)
        self.assertEqual(self.backend.get_object(DST_OTHER), PAYLOAD)
        result = self.orchestrator.last_result
        assert result is not None
        self.assertEqual(result.strategy, CopyStrategyKind.RELAY)
        self.assertEqual(self.backend.count("copy_part_range"), 0)
        self.assertEqual(self.backend.count("upload_part"), 10)
        self._assert_no_session_left()

    def test_force_relay_in_same_region(self) -> None:
        err = self.orchestrator.copy(SRC, DST_SAME, _options(force_relay=True))
        self.assertIsNone(err)
        self.assertEqual(self.backend.get_object(DST_SAME), PAYLOAD)
        self.assertEqual(self.backend.count("copy_part_range"), 0)
        self.assertEqual(self.backend.count("upload_part"), 10)

    def test_small_object_uses_direct_copy(self) -> None:
        err = self.orchestrator.copy(SRC, DST_SAME, _options(part_size=MiB))
        self.assertIsNone(err)
        self.assertEqual(self.backend.get_object(DST_SAME), PAYLOAD)
        self.assertEqual(self.backend.count("direct_copy"), 1)
        self.assertEqual(self.backend.count("open_upload_session"), 0)
        result = self.orchestrator.last_result
        assert result is not None
        self.assertEqual(result.strategy, CopyStrategyKind.DIRECT)

    def test_direct_copy_threshold_can_be_disabled(self) -> None:
        err = self.orchestrator.copy(
            SRC, DST_SAME, _options(part_size=MiB, direct_copy_threshold=0)
        )
        self.assertIsNone(err)
        self.assertEqual(self.backend.count("direct_copy"), 0)
        self.assertEqual(self.backend.part_numbers("copy_part_range"), [1])

    def test_zero_length_object(self) -> None:
        backend = _make_backend(b"")
        orchestrator = CopyOrchestrator(backend)
        err = orchestrator.copy(SRC, DST_OTHER, _options())
        self.assertIsNone(err)
        self.assertEqual(backend.get_object(DST_OTHER), b"")
        self.assertEqual(backend.count("direct_copy"), 1)
        self.assertEqual(backend.count("open_upload_session"), 0)
        self.assertEqual(orchestrator.plan(0), [])

    def test_missing_source(self) -> None:
        missing = SRC.with_key("nope")
        err = self.orchestrator.copy(missing, DST_SAME, _options())
        self.assertIsInstance(err, ObjectNotFoundError)
        self.assertEqual(self.backend.count("open_upload_session"), 0)
        self.assertEqual(self.backend.count("direct_copy"), 0)

    def test_same_object_is_rejected(self) -> None:
        err = self.orchestrator.copy(SRC, SRC, _options())
        self.assertIsInstance(err, SameObjectError)
        self.assertEqual(self.backend.get_object(SRC), PAYLOAD)

    def test_part_failure_aborts_once(self) -> None:
        self.backend.fail("copy_part_range", service_error("AccessDenied"), part_number=3)
        err = self.orchestrator.copy(SRC, DST_SAME, _options())
        self.assertIsInstance(err, PartTransferError)
        assert isinstance(err, PartTransferError)
        self.assertEqual(err.part_number, 3)
        self.assertEqual(self.backend.count("abort_session"), 1)
        self.assertEqual(self.backend.count("complete_session"), 0)
        self.assertEqual(self.backend.part_numbers("copy_part_range"), [1, 2, 3])
        self.assertIsNone(self.backend.get_object(DST_SAME))
        self._assert_no_session_left()

    def test_exhausted_retries_abort_once(self) -> None:
        self.backend.fail(
            "upload_part", service_error("InternalError"), part_number=5, times=100
        )
        err = self.orchestrator.copy(SRC, DST_OTHER, _options(retries=2))
        self.assertIsInstance(err, PartTransferError)
        self.assertEqual(self.backend.count("abort_session"), 1)
        self.assertEqual(self.backend.count("complete_session"), 0)
        self.assertIsNone(self.backend.get_object(DST_OTHER))

    def test_finalize_failure_aborts(self) -> None:
        self.backend.fail("complete_session", service_error("InternalError"))
        err = self.orchestrator.copy(SRC, DST_SAME, _options())
        self.assertIsInstance(err, SessionFinalizeError)
        self.assertEqual(self.backend.count("abort_session"), 1)
        self._assert_no_session_left()

    def test_abort_failure_does_not_mask_original_error(self) -> None:
        self.backend.fail("copy_part_range", service_error("AccessDenied"), part_number=2)
        self.backend.fail("abort_session", service_error("InternalError"))
        with self.assertWarns(UserWarning):
            err = self.orchestrator.copy(SRC, DST_SAME, _options())
        self.assertIsInstance(err, PartTransferError)
        assert isinstance(err, PartTransferError)
        self.assertIsNotNone(err.abort_error)

    def test_open_failure(self) -> None:
        self.backend.fail("open_upload_session", service_error("AccessDenied"))
        err = self.orchestrator.copy(SRC, DST_SAME, _options())
        self.assertIsInstance(err, SessionOpenError)
        self.assertEqual(self.backend.count("copy_part_range"), 0)
        self.assertEqual(self.backend.count("abort_session"), 0)

    def test_size_verification(self) -> None:
        backend = _TruncatingBackend({"src": "us-east-1", "dst": "us-east-1"})
        backend.put_object(SRC, PAYLOAD)
        err = CopyOrchestrator(backend).copy(SRC, DST_SAME, _options())
        self.assertIsInstance(err, CopyVerificationError)
        err = CopyOrchestrator(backend).copy(SRC, DST_SAME, _options(verify=False))
        self.assertIsNone(err)

    def test_progress_callback(self) -> None:
        seen: list[int] = []
        options = _options(on_part_committed=lambda p: seen.append(p.part_number))
        err = self.orchestrator.copy(SRC, DST_SAME, options)
        self.assertIsNone(err)
        self.assertEqual(seen, list(range(1, 11)))

    def test_plan_rejects_non_positive_part_size(self) -> None:
        with self.assertRaises(PlanningError):
            self.orchestrator.plan(1000, 0)
        with self.assertRaises(PlanningError):
            self.orchestrator.plan(1000, -1)
        err = self.orchestrator.copy(SRC, DST_SAME, _options(part_size=0))
        self.assertIsInstance(err, PlanningError)
        self.assertIsNone(self.backend.get_object(DST_SAME))

    def test_invalid_options_are_planning_errors(self) -> None:
        cases = [
            {"part_size": -5},
            {"concurrency": 0},
            {"concurrency": -1},
            {"retries": -1},
            {"direct_copy_threshold": -1},
        ]
        for kwargs in cases:
            with self.subTest(**kwargs):
                err = self.orchestrator.copy(SRC, DST_OTHER, _options(**kwargs))
                self.assertIsInstance(err, PlanningError)
        # rejected before any request is made
        self.assertEqual(self.backend.count("head_object"), 0)
        self.assertEqual(self.backend.count("open_upload_session"), 0)

    def test_make_plan_matches_copy_path(self) -> None:
        kind, copy_plan = self.orchestrator.make_plan(SRC, DST_SAME)
        self.assertEqual(kind, CopyStrategyKind.DIRECT)
        self.assertIsNone(copy_plan)

        kind, copy_plan = self.orchestrator.make_plan(SRC, DST_SAME, _options())
        self.assertEqual(kind, CopyStrategyKind.SERVER_SIDE)
        assert copy_plan is not None
        self.assertEqual(copy_plan.part_count, 10)

        kind, copy_plan = self.orchestrator.make_plan(SRC, DST_OTHER, _options())
        self.assertEqual(kind, CopyStrategyKind.RELAY)
        assert copy_plan is not None
        self.assertEqual(copy_plan.part_count, 10)

        with self.assertRaises(ObjectNotFoundError):
            self.orchestrator.make_plan(SRC.with_key("nope"), DST_SAME)
        self.assertEqual(self.backend.count("direct_copy"), 0)
        self.assertEqual(self.backend.count("open_upload_session"), 0)

    def test_plan_inspection(self) -> None:
        ranges = self.orchestrator.plan(250 * MiB, 100 * MiB)
        self.assertEqual(len(ranges), 3)
        self.assertEqual(ranges[-1].length, 50 * MiB)
        self.assertEqual(len(self.orchestrator.plan(250 * MiB)), 3)


class RenameTester(unittest.TestCase):
    """Test rename, a copy followed by a delete."""

    def setUp(self) -> None:
        self.backend = _make_backend()
        self.orchestrator = CopyOrchestrator(self.backend)
        self.renamed = SRC.with_key("archive/renamed.tar")

    def test_rename(self) -> None:
        err = self.orchestrator.rename(SRC, self.renamed.key, _options())
        self.assertIsNone(err)
        self.assertEqual(self.backend.get_object(self.renamed), PAYLOAD)
        self.assertIsNone(self.backend.get_object(SRC))

    def test_rename_delete_failure_leaves_both(self) -> None:
        self.backend.fail("delete_object", service_error("AccessDenied"))
        err = self.orchestrator.rename(SRC, self.renamed.key, _options())
        self.assertIsInstance(err, ObjectDeleteError)
        self.assertEqual(self.backend.get_object(self.renamed), PAYLOAD)
        self.assertEqual(self.backend.get_object(SRC), PAYLOAD)
        # the caller can retry the delete alone
        self.assertIsNone(self.orchestrator.delete(SRC))
        self.assertIsNone(self.backend.get_object(SRC))

    def test_rename_copy_failure_keeps_source(self) -> None:
        self.backend.fail("open_upload_session", service_error("AccessDenied"))
        err = self.orchestrator.rename(SRC, self.renamed.key, _options())
        self.assertIsInstance(err, SessionOpenError)
        self.assertEqual(self.backend.count("delete_object"), 0)
        self.assertEqual(self.backend.get_object(SRC), PAYLOAD)

    def test_rename_to_same_key(self) -> None:
        err = self.orchestrator.rename(SRC, SRC.key, _options())
        self.assertIsInstance(err, SameObjectError)
        self.assertEqual(self.backend.get_object(SRC), PAYLOAD)


if __name__ == "__main__":
    unittest.main()
