import unittest

from prioritysync.services.errors import UnknownPriorityError
from prioritysync.services.priority_mapping import PriorityMapping


class PriorityMappingTests(unittest.TestCase):
    def test_parse_default(self):
        mapping = PriorityMapping.parse(None)

        self.assertEqual(mapping.values, ("High", "Medium", "Low"))
        self.assertEqual(mapping.labels, ("High-Priority", "Medium-Priority", "Low-Priority"))

    def test_parse_tolerates_whitespace_and_empty_entries(self):
        mapping = PriorityMapping.parse(" P0 : urgent , ,P1:important ")

        self.assertEqual(mapping.pairs, (("P0", "urgent"), ("P1", "important")))

    def test_rejects_non_injective_mappings(self):
        with self.assertRaises(ValueError):
            PriorityMapping.parse("High:prio,Low:prio")
        with self.assertRaises(ValueError):
            PriorityMapping.parse("High:a,High:b")
        with self.assertRaises(ValueError):
            PriorityMapping.parse("High")

    def test_lookup_both_ways(self):
        mapping = PriorityMapping.parse(None)

        self.assertEqual(mapping.label_for("Medium"), "Medium-Priority")
        self.assertEqual(mapping.value_for("Low-Priority"), "Low")
        self.assertIsNone(mapping.value_for("bug"))
        with self.assertRaises(UnknownPriorityError):
            mapping.label_for("Urgent")

    def test_pick_value_uses_declaration_order(self):
        mapping = PriorityMapping.parse(None)

        self.assertEqual(mapping.pick_value(["bug"]), (None, False))
        self.assertEqual(mapping.pick_value(["Low-Priority"]), ("Low", False))
        self.assertEqual(mapping.pick_value(["Low-Priority", "Medium-Priority"]), ("Medium", True))


if __name__ == "__main__":
    unittest.main()
