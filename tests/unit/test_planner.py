"""
Unit test file.
"""

import unittest

from s3copy_api import ObjectLocator, PlanningError, make_copy_plan, plan
from s3copy_api.planner import MAX_PART_COUNT, MAX_PART_SIZE, resolve_part_size

MiB = 1024 * 1024


class PartitionPlannerTester(unittest.TestCase):
    """Test partition planning."""

    def _assert_covers(self, total_size: int, part_size: int) -> None:
        ranges = plan(total_size, part_size)
        expected_count = -(-total_size // part_size)
        self.assertEqual(len(ranges), expected_count)
        offset = 0
        for r in ranges:
            self.assertEqual(r.start, offset)
            self.assertLessEqual(r.length, part_size)
            offset = r.end + 1
        self.assertEqual(offset, total_size)
        for r in ranges[:-1]:
            self.assertEqual(r.length, part_size)

    def test_ranges_cover_object_exactly(self) -> None:
        for total_size in [1, 2, 7, 99, 100, 101, 1000, 1023, 1024, 1025]:
            for part_size in [1, 3, 10, 100, 1024, 4096]:
                with self.subTest(total_size=total_size, part_size=part_size):
                    self._assert_covers(total_size, part_size)

    def test_250_mib_in_100_mib_parts(self) -> None:
        ranges = plan(250 * MiB, 100 * MiB)
        self.assertEqual(
            [(r.start, r.end) for r in ranges],
            [
                (0, 104857599),
                (104857600, 209715199),
                (209715200, 262143999),
            ],
        )
        self.assertEqual(ranges[-1].length, 50 * MiB)

    def test_even_split_last_part_is_full(self) -> None:
        ranges = plan(300, 100)
        self.assertEqual(len(ranges), 3)
        self.assertEqual(ranges[-1].length, 100)

    def test_zero_length_object_has_no_ranges(self) -> None:
        self.assertEqual(plan(0, 100 * MiB), [])

    def test_deterministic(self) -> None:
        self.assertEqual(plan(12345, 1000), plan(12345, 1000))

    def test_invalid_part_size(self) -> None:
        with self.assertRaises(PlanningError):
            plan(100, 0)
        with self.assertRaises(PlanningError):
            plan(100, -5)

    def test_negative_size(self) -> None:
        with self.assertRaises(PlanningError):
            plan(-1, 100)

    def test_range_header(self) -> None:
        ranges = plan(250, 100)
        self.assertEqual(ranges[0].to_header(), "bytes=0-99")
        self.assertEqual(ranges[2].to_header(), "bytes=200-249")

    def test_resolve_part_size_keeps_target(self) -> None:
        self.assertEqual(resolve_part_size(250 * MiB, 100 * MiB), 100 * MiB)

    def test_resolve_part_size_grows_for_part_limit(self) -> None:
        total_size = 2 * MAX_PART_COUNT * MiB
        with self.assertWarns(UserWarning):
            part_size = resolve_part_size(total_size, MiB)
        self.assertEqual(part_size, 2 * MiB)
        self.assertLessEqual(len(plan(total_size, part_size)), MAX_PART_COUNT)

    def test_resolve_part_size_rejects_oversized_parts(self) -> None:
        with self.assertRaises(PlanningError):
            resolve_part_size(MiB, MAX_PART_SIZE + 1)
        with self.assertRaises(PlanningError):
            resolve_part_size(MAX_PART_SIZE * (MAX_PART_COUNT + 1), MiB)

    def test_copy_plan(self) -> None:
        src = ObjectLocator(domain="us-east-1", bucket="src", key="a/b.bin")
        dst = ObjectLocator(domain="us-west-2", bucket="dst", key="a/b.bin")
        copy_plan = make_copy_plan(src, dst, 250, 100)
        self.assertEqual(copy_plan.part_count, 3)
        self.assertEqual(copy_plan.total_bytes, 250)
        self.assertIn("part 00003: bytes=200-249", copy_plan.describe())


if __name__ == "__main__":
    unittest.main()
