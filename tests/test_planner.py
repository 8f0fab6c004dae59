import unittest
from abcp_search.planner.core import plan, plan_stages


class TestPlanner(unittest.TestCase):
    def test_every_query_embeds_issuer(self):
        queries = plan("Acme Funding LLC")
        self.assertGreater(len(queries), 0)
        for q in queries:
            self.assertIn('"Acme Funding LLC"', q)

    def test_deterministic_and_fixed_size(self):
        self.assertEqual(plan("Acme Funding LLC"), plan("Acme Funding LLC"))
        self.assertEqual(len(plan("Acme Funding LLC")), 8)
        self.assertEqual(len(plan("X")), 8)

    def test_issuer_is_trimmed(self):
        self.assertEqual(plan("  Liberty Street Funding LLC "), plan("Liberty Street Funding LLC"))

    def test_empty(self):
        self.assertEqual(plan(""), [])
        self.assertEqual(plan("   "), [])
        self.assertEqual(plan_stages(""), ([], []))

    def test_stages(self):
        primary, fallback = plan_stages("Thunder Bay Funding LLC")
        self.assertEqual(plan("Thunder Bay Funding LLC"), primary + fallback)
        self.assertTrue(any("commercial paper conduit" in q for q in primary))
        self.assertTrue(all(q.startswith("site:") for q in fallback))
        self.assertIn("site:sec.gov", fallback[0])


if __name__ == "__main__":
    unittest.main()
