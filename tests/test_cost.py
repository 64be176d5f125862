"""Tests for the different cost models.

All tests use the same two-step plan: the first lookup finds the IDs of all items of a category, the second lookup fetches
the names of these items from the simple index of the items entity.
"""
from __future__ import annotations

import unittest

from nosqladvisor import util
from nosqladvisor.cost import CassandraCost, EntityCountCost, FieldSizeCost, RequestCountCost, cost_model
from nosqladvisor.indexes import Index
from nosqladvisor.plans import IndexLookupStep, QueryPlanner, QueryState
from nosqladvisor.qal import Condition, KeyPath, Query
from tests import fixtures


class CostModelTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = fixtures.items()
        items = self.model["items"]
        self.query = fixtures.items_by_category(self.model, "name")
        self.indexes = [Index([items["category"]], [items.id_field], [], KeyPath.parse(self.model, "items")),
                        Index.simple(items)]

    def test_request_count(self) -> None:
        plan = QueryPlanner(self.indexes, RequestCountCost()).min_plan(self.query)
        self.assertEqual([step.cost for step in plan], [1, 100])
        self.assertEqual(plan.cost, 101)

    def test_entity_count(self) -> None:
        plan = QueryPlanner(self.indexes, EntityCountCost()).min_plan(self.query)
        self.assertEqual(plan.cost, 200)

    def test_field_size(self) -> None:
        plan = QueryPlanner(self.indexes, FieldSizeCost()).min_plan(self.query)
        # the first lookup transfers category and ID, the final lookup only the selected name
        self.assertEqual([step.cost for step in plan], [100 * (10 + 16), 100 * 10])

    def test_cassandra(self) -> None:
        plan = QueryPlanner(self.indexes, CassandraCost()).min_plan(self.query)
        first, second = plan.steps
        self.assertAlmostEqual(first.cost, 0.0078 + 1 * 0.0014 + 100 * 1.6e-05)
        self.assertAlmostEqual(second.cost, 0.0078 + 100 * 0.0014 + 100 * 1.6e-05)

    def test_costs_are_not_negative(self) -> None:
        for name in ("request_count", "entity_count", "field_size", "cassandra"):
            with self.subTest("Cost model", name=name):
                plans = QueryPlanner(self.indexes, cost_model(name)).find_plans_for_query(self.query)
                self.assertTrue(plans)
                for plan in plans:
                    self.assertTrue(all(step.cost >= 0 for step in plan))

    def test_leading_lookup_does_not_reduce_request_count(self) -> None:
        items = self.model["items"]
        query = Query([items["name"]], KeyPath.parse(self.model, "items"), [Condition(items.id_field)])
        simple = Index.simple(items)
        by_id = Index([items.id_field], [], [items["category"]], KeyPath.parse(self.model, "items"))
        request_count = RequestCountCost()

        single = IndexLookupStep.apply(simple, QueryState.initial(query), None)
        self.assertIsNotNone(single)
        single.estimate_cost(request_count)

        leading = IndexLookupStep.apply(by_id, QueryState.initial(query), None)
        self.assertIsNotNone(leading)
        leading.estimate_cost(request_count)
        final = IndexLookupStep.apply(simple, leading.state, leading)
        self.assertIsNotNone(final)
        final.estimate_cost(request_count)

        self.assertEqual(single.cost, 1)
        self.assertGreaterEqual(final.cost, single.cost)
        self.assertGreaterEqual(leading.cost + final.cost, single.cost)

        with self.subTest("Lookup after a lookup with many results"):
            plan = QueryPlanner(self.indexes, request_count).min_plan(self.query)
            first, second = plan.steps
            self.assertGreaterEqual(second.cost, first.cost)

    def test_unestimated_step(self) -> None:
        lookup = IndexLookupStep.apply(self.indexes[0], QueryState.initial(self.query), None)
        self.assertIsNotNone(lookup)
        self.assertRaises(util.StateError, lambda: lookup.cost)
        self.assertEqual(lookup.estimate_cost(RequestCountCost()), 1)
        self.assertEqual(lookup.cost, 1)


class CostModelFactoryTests(unittest.TestCase):
    def test_by_name(self) -> None:
        self.assertIsInstance(cost_model("request_count"), RequestCountCost)
        self.assertIsInstance(cost_model("entity_count"), EntityCountCost)
        self.assertIsInstance(cost_model("field_size"), FieldSizeCost)
        cassandra = cost_model("cassandra", row_cost=0.5)
        self.assertIsInstance(cassandra, CassandraCost)
        self.assertEqual(cassandra.options["row_cost"], 0.5)
        self.assertEqual(cassandra.describe()["name"], "cassandra")

    def test_invalid_models(self) -> None:
        with self.subTest("Unknown name"):
            self.assertRaises(ValueError, cost_model, "latency")
        with self.subTest("Options for model without parameters"):
            self.assertRaises(ValueError, cost_model, "request_count", row_cost=1)
        with self.subTest("Negative constant"):
            self.assertRaises(ValueError, CassandraCost, index_cost=-1)


if __name__ == "__main__":
    unittest.main()
