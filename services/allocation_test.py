import unittest

from models.experiments import VariantConfig
from services.allocation import allocate, validate_allocation
from services.errors import AllocationError


def variant(id, pct, is_control=False):
    return VariantConfig(id=id, name=f"v{id}", traffic_percentage=pct, is_control=is_control)


class TestAllocate(unittest.TestCase):

    def test_full_split_covers_every_bucket(self):
        variants = [variant(1, 50, True), variant(2, 50)]
        for bucket in range(100):
            chosen = allocate(variants, bucket)
            self.assertIsNotNone(chosen)
            self.assertEqual(chosen.id, 1 if bucket < 50 else 2)

    def test_uneven_split(self):
        variants = [variant(1, 34, True), variant(2, 33), variant(3, 33)]
        self.assertEqual(allocate(variants, 33).id, 1)
        self.assertEqual(allocate(variants, 34).id, 2)
        self.assertEqual(allocate(variants, 66).id, 2)
        self.assertEqual(allocate(variants, 67).id, 3)
        self.assertEqual(allocate(variants, 99).id, 3)

    def test_remainder_is_unallocated(self):
        variants = [variant(1, 30, True), variant(2, 30)]
        self.assertEqual(allocate(variants, 59).id, 2)
        for bucket in range(60, 100):
            self.assertIsNone(allocate(variants, bucket))

    def test_zero_percent_variant_never_chosen(self):
        variants = [variant(1, 0, True), variant(2, 100)]
        self.assertTrue(all(allocate(variants, b).id == 2 for b in range(100)))


class TestValidateAllocation(unittest.TestCase):

    def test_valid(self):
        validate_allocation([variant(1, 50, True), variant(2, 50)])
        validate_allocation([variant(1, 10, True)])

    def test_no_variants(self):
        with self.assertRaisesRegex(AllocationError, "at least one variant"):
            validate_allocation([])

    def test_total_over_100(self):
        with self.assertRaisesRegex(AllocationError, "cannot exceed 100%"):
            validate_allocation([variant(1, 60, True), variant(2, 60)])

    def test_control_count(self):
        with self.assertRaisesRegex(AllocationError, "exactly 1 control"):
            validate_allocation([variant(1, 50), variant(2, 50)])
        with self.assertRaisesRegex(AllocationError, "exactly 1 control"):
            validate_allocation([variant(1, 50, True), variant(2, 50, True)])
