"""Tests for the query planner and the update planner."""
from __future__ import annotations

import itertools
import unittest

from nosqladvisor.cost import RequestCountCost
from nosqladvisor.enumerator import IndexEnumerator
from nosqladvisor.indexes import Index, materialize_view
from nosqladvisor.plans import (
    DeletePlanStep,
    FilterStep,
    IndexLookupStep,
    InsertPlanStep,
    LimitStep,
    NoPlanError,
    QueryPlanner,
    SortStep,
    UpdatePlanner,
)
from nosqladvisor.qal import Condition, Delete, Insert, KeyPath, Query, Update
from nosqladvisor.workloads import Workload
from tests import fixtures


class QueryPlannerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = fixtures.items()
        self.items = self.model["items"]
        self.path = KeyPath.parse(self.model, "items")
        self.cost_model = RequestCountCost()

    def test_materialized_view_is_single_lookup(self) -> None:
        model = fixtures.users_regions()
        query = fixtures.region_name_query(model)
        plan = QueryPlanner([query.materialize_view()], self.cost_model).min_plan(query)
        self.assertEqual(len(plan), 1)
        self.assertIsInstance(plan[0], IndexLookupStep)
        self.assertEqual(plan.indexes, [query.materialize_view()])
        self.assertEqual(plan.cost, 1)
        self.assertEqual(plan.cardinality, 1)

    def test_no_plan(self) -> None:
        query = fixtures.items_by_category(self.model, "name")
        planner = QueryPlanner([Index.simple(self.items)], self.cost_model)
        self.assertRaises(NoPlanError, planner.min_plan, query)
        self.assertEqual(planner.find_plans_for_query(query), [])

        with self.subTest("No indexes"):
            self.assertRaises(NoPlanError, QueryPlanner([], self.cost_model).min_plan, query)

    def test_two_step_plan(self) -> None:
        query = fixtures.items_by_category(self.model, "name")
        ids_by_category = Index([self.items["category"]], [self.items.id_field], [], self.path)
        plan = QueryPlanner([Index.simple(self.items), ids_by_category], self.cost_model).min_plan(query)
        self.assertEqual(plan.indexes, [ids_by_category, Index.simple(self.items)])
        self.assertEqual(plan.cost, 101)
        self.assertEqual(plan.cardinality, 100)
        self.assertIs(plan[1].parent, plan[0])
        self.assertIsNone(plan[0].parent)

    def test_prefers_cheaper_plan(self) -> None:
        query = fixtures.items_by_category(self.model, "name")
        ids_by_category = Index([self.items["category"]], [self.items.id_field], [], self.path)
        indexes = [ids_by_category, Index.simple(self.items), query.materialize_view()]
        plan = QueryPlanner(indexes, self.cost_model).min_plan(query)
        self.assertEqual(plan.indexes, [query.materialize_view()])
        self.assertEqual(plan.cost, 1)

    def test_filter_step(self) -> None:
        query = Query([self.items["name"]], self.path,
                      [Condition(self.items["category"]), Condition(self.items["price"], ">")])
        index = Index([self.items["category"]], [self.items.id_field], [self.items["name"], self.items["price"]], self.path)
        plan = QueryPlanner([index], self.cost_model).min_plan(query)
        self.assertEqual([type(step) for step in plan], [IndexLookupStep, FilterStep])
        self.assertEqual(plan[1].range, (self.items["price"],))
        self.assertAlmostEqual(plan.cardinality, 10)
        self.assertEqual(plan.cost, 1)

    def test_range_lookup(self) -> None:
        query = Query([self.items["name"]], self.path,
                      [Condition(self.items["category"]), Condition(self.items["price"], ">")])
        index = Index([self.items["category"]], [self.items["price"], self.items.id_field], [self.items["name"]],
                      self.path)
        plan = QueryPlanner([index], self.cost_model).min_plan(query)
        self.assertEqual(len(plan), 1)
        self.assertEqual(plan[0].range_filter, self.items["price"])
        self.assertAlmostEqual(plan.cardinality, 10)

    def test_sort_and_limit(self) -> None:
        query = Query([self.items["name"]], self.path, [Condition(self.items["category"])], order=[self.items["price"]],
                      limit=5)
        unsorted = Index([self.items["category"]], [self.items.id_field], [self.items["name"], self.items["price"]],
                         self.path)
        with self.subTest("Sort in memory"):
            plan = QueryPlanner([unsorted], self.cost_model).min_plan(query)
            self.assertEqual([type(step) for step in plan], [IndexLookupStep, SortStep, LimitStep])
            self.assertEqual(plan.cardinality, 5)
            self.assertEqual(plan.cost, 2)

        presorted = Index([self.items["category"]], [self.items["price"], self.items.id_field], [self.items["name"]],
                          self.path)
        with self.subTest("Sorted by the index"):
            plan = QueryPlanner([unsorted, presorted], self.cost_model).min_plan(query)
            self.assertEqual([type(step) for step in plan], [IndexLookupStep, LimitStep])
            self.assertEqual(plan[0].order_by, (self.items["price"],))
            self.assertEqual(plan.indexes, [presorted])
            self.assertEqual(plan.cost, 1)

    def test_join_plan(self) -> None:
        model = fixtures.users_regions()
        users, regions = model["users"], model["regions"]
        query = fixtures.region_name_query(model)
        region_of_user = Index([users.id_field], [regions.id_field], [], KeyPath.parse(model, "users.region"))
        plan = QueryPlanner([region_of_user, Index.simple(regions)], self.cost_model).min_plan(query)
        self.assertEqual(plan.indexes, [region_of_user, Index.simple(regions)])
        self.assertEqual(plan.cost, 2)

    def test_min_plan_is_cheapest(self) -> None:
        model = fixtures.tweets()
        users, tweets = model["users"], model["tweets"]
        query = Query([tweets["body"], tweets["timestamp"]], KeyPath.parse(model, "tweets.user"),
                      [Condition(users["city"]), Condition(tweets["retweets"], ">=")], order=[tweets["timestamp"]],
                      label="popular_tweets")
        workload = Workload(model, [query])
        indexes = IndexEnumerator(workload).indexes_for_workload()
        planner = QueryPlanner(indexes, self.cost_model)

        plans = planner.find_plans_for_query(query)
        best = planner.min_plan(query)
        self.assertTrue(plans)
        self.assertIn(best, plans)
        for plan in plans:
            with self.subTest("Alternative plan", plan=str(plan)):
                self.assertLessEqual(best.cost, plan.cost)
                cumulative = list(itertools.accumulate(step.cost for step in plan))
                self.assertEqual(cumulative, sorted(cumulative))
                self.assertTrue(plan[-1].state.answered)

    def test_deterministic(self) -> None:
        model = fixtures.tweets()
        query = Query([model.find_field("links.url")], KeyPath.parse(model, "users.tweets.links"),
                      [Condition(model.find_field("users.city"))])
        indexes = IndexEnumerator(Workload(model, [query])).indexes_for_query(query)
        first = QueryPlanner(indexes, self.cost_model).min_plan(query)
        second = QueryPlanner(indexes, self.cost_model).min_plan(query)
        self.assertEqual(first, second)
        self.assertEqual(first.indexes, second.indexes)


class UpdatePlannerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = fixtures.users_regions()
        self.users, self.regions = self.model["users"], self.model["regions"]
        self.view = materialize_view(fixtures.region_name_query(self.model))
        self.users_of_region = Index([self.regions.id_field], [self.users.id_field], [],
                                     KeyPath.parse(self.model, "regions.users"))
        self.cost_model = RequestCountCost()

    def test_update_with_support_query(self) -> None:
        update = Update(self.regions, KeyPath.parse(self.model, "regions"), [self.regions["name"]],
                        [Condition(self.regions.id_field)])
        planner = UpdatePlanner([self.view, self.users_of_region], self.cost_model)
        plan = planner.plan(update, self.view)
        self.assertEqual(len(plan.query_plans), 1)
        self.assertEqual(plan.query_plans[0].indexes, [self.users_of_region])
        self.assertEqual([type(step) for step in plan.update_steps], [InsertPlanStep])
        self.assertEqual(plan.update_steps[0].cardinality, 100)
        self.assertEqual(plan.cost, 1 + 100)
        self.assertEqual(plan.indexes, [self.view, self.users_of_region])

    def test_update_without_support_index(self) -> None:
        update = Update(self.regions, KeyPath.parse(self.model, "regions"), [self.regions["name"]],
                        [Condition(self.regions.id_field)])
        planner = UpdatePlanner([self.view], self.cost_model)
        self.assertRaises(NoPlanError, planner.plan, update, self.view)

    def test_unmodified_index(self) -> None:
        update = Update(self.regions, KeyPath.parse(self.model, "regions"), [self.regions["name"]],
                        [Condition(self.regions.id_field)])
        planner = UpdatePlanner([], self.cost_model)
        self.assertRaises(ValueError, planner.plan, update, Index.simple(self.users))
        self.assertEqual(planner.plans_for_update(update, [Index.simple(self.users)]), [])

    def test_delete(self) -> None:
        delete = Delete(self.regions, KeyPath.parse(self.model, "regions"), [Condition(self.regions.id_field)])
        plan = UpdatePlanner([], self.cost_model).plan(delete, Index.simple(self.regions))
        self.assertEqual(plan.query_plans, ())
        self.assertEqual([type(step) for step in plan.update_steps], [DeletePlanStep])
        self.assertEqual(plan.cost, 1)

    def test_insert(self) -> None:
        insert = Insert(self.users, [self.users["name"]], [self.users["region"]])
        planner = UpdatePlanner([Index.simple(self.regions)], self.cost_model)
        plans = planner.plans_for_update(insert, [self.view, Index.simple(self.users), Index.simple(self.regions)])
        self.assertEqual([plan.index for plan in plans], [self.view, Index.simple(self.users)])

        view_plan = plans[0]
        self.assertEqual(view_plan.query_plans[0].indexes, [Index.simple(self.regions)])
        self.assertEqual(view_plan.update_steps[0].cardinality, 1)
        self.assertEqual(view_plan.cost, 2)
        self.assertEqual(plans[1].cost, 1)


if __name__ == "__main__":
    unittest.main()
