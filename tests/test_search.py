"""Tests for the index selection search and its results."""
from __future__ import annotations

import io
import json
import unittest

from nosqladvisor import util
from nosqladvisor.cost import RequestCountCost
from nosqladvisor.indexes import Index
from nosqladvisor.plans import NoPlanError
from nosqladvisor.qal import Condition, Delete, Insert, KeyPath, Query, Update
from nosqladvisor.search import CapacityError, Search, SearchResults, SearchSettings
from nosqladvisor.workloads import Workload
from tests import fixtures


def items_workload() -> Workload:
    model = fixtures.items()
    return Workload(model, [fixtures.items_by_category(model, "name", label="q1"),
                            fixtures.items_by_category(model, "price", label="q2")])


class SearchTests(unittest.TestCase):
    def test_single_query(self) -> None:
        model = fixtures.users_regions()
        query = fixtures.region_name_query(model)
        results = Search(Workload(model, [query]), RequestCountCost()).search_overlap()
        self.assertEqual(results.indexes, [query.materialize_view()])
        self.assertEqual(results.total_cost, 1)
        self.assertEqual(results.total_size, 42_000)
        self.assertEqual(results.plans_for("region_name").indexes, [query.materialize_view()])

    def test_merges_overlapping_indexes(self) -> None:
        workload = items_workload()
        items = workload.model["items"]
        results = Search(workload, RequestCountCost()).search_overlap()
        merged = Index([items["category"]], [items.id_field], [items["name"], items["price"]],
                       KeyPath.parse(workload.model, "items"))
        self.assertEqual(results.indexes, [merged])
        self.assertEqual(results.total_cost, 2)
        self.assertEqual(results.total_size, 44_000)

    def test_budget_is_respected(self) -> None:
        workload = items_workload()
        results = Search(workload, RequestCountCost()).search_overlap(max_space=50_000)
        self.assertLessEqual(results.total_size, 50_000)
        self.assertEqual(results.max_space, 50_000)

    def test_capacity_error(self) -> None:
        with self.subTest("Single query"):
            model = fixtures.users_regions()
            search = Search(Workload(model, [fixtures.region_name_query(model)]), RequestCountCost())
            self.assertRaises(CapacityError, search.search_overlap, max_space=0)
        with self.subTest("Merged indexes"):
            search = Search(items_workload(), RequestCountCost(), SearchSettings(max_space=0))
            with self.assertRaises(CapacityError) as context:
                search.search_overlap()
            self.assertEqual(context.exception.max_space, 0)
            self.assertIsNotNone(context.exception.statement)

    def test_update_cost_outweighs_views(self) -> None:
        model = fixtures.users_regions()
        users, regions = model["users"], model["regions"]
        query = fixtures.region_name_query(model)
        update = Update(regions, KeyPath.parse(model, "regions"), [regions["name"]], [Condition(regions.id_field)],
                        label="rename_region")
        results = Search(Workload(model, [query, update]), RequestCountCost()).search_overlap()

        # maintaining the view requires a lookup of all users of the region, a two-step plan is cheaper
        region_of_user = Index([users.id_field], [regions.id_field], [], KeyPath.parse(model, "users.region"))
        self.assertEqual(set(results.indexes), {region_of_user, Index.simple(regions)})
        self.assertEqual(results.plans_for("region_name").indexes, [region_of_user, Index.simple(regions)])
        update_plans = results.plans_for("rename_region")
        self.assertEqual([plan.index for plan in update_plans], [Index.simple(regions)])
        self.assertEqual(update_plans[0].query_plans, ())
        self.assertEqual(results.total_cost, 2 + 1)

    def test_removal_lowers_maintenance_cost(self) -> None:
        model = fixtures.items()
        items = model["items"]
        path = KeyPath.parse(model, "items")
        query = fixtures.items_by_category(model, "name", label="q1")
        update = Update(items, path, [items["name"]], [Condition(items.id_field)], label="u1")
        ids_by_category = Index([items["category"]], [items.id_field], [], path)
        candidates = [query.materialize_view(), ids_by_category, Index.simple(items)]
        workload = Workload(model, [query, update], weights={"u1": 100})

        results = Search(workload, RequestCountCost()).search_overlap(candidates)
        self.assertEqual(set(results.indexes), {ids_by_category, Index.simple(items)})
        self.assertEqual([plan.index for plan in results.plans_for("u1")], [Index.simple(items)])
        self.assertEqual(results.total_cost, 101 + 100 * 1)

        with self.subTest("Budget does not improve the result"):
            budgeted = Search(workload, RequestCountCost()).search_overlap(candidates, max_space=results.total_size)
            self.assertEqual(budgeted.total_cost, results.total_cost)

    def test_inserts_and_deletes(self) -> None:
        model = fixtures.users_regions()
        users = model["users"]
        query = fixtures.region_name_query(model)
        insert = Insert(users, [users["name"]], [users["region"]], label="add_user")
        delete = Delete(users, KeyPath.parse(model, "users"), [Condition(users.id_field)], label="remove_user")
        results = Search(Workload(model, [query, insert, delete]), RequestCountCost()).search_overlap()

        results.validate()
        self.assertTrue(results.plans_for("region_name").indexes)
        for statement in (insert, delete):
            with self.subTest("Maintained indexes", statement=statement.label):
                plans = results.plans_for(statement)
                self.assertTrue(plans)
                self.assertEqual({plan.index for plan in plans},
                                 {index for index in results.indexes if statement.modifies_index(index)})
                self.assertEqual(results.statement_cost(statement), sum(plan.cost for plan in plans))
        self.assertEqual(results.total_cost, sum(results.statement_cost(statement)
                                                 for statement in (query, insert, delete)))

    def test_candidates_without_plan(self) -> None:
        with self.subTest("Query"):
            workload = items_workload()
            search = Search(workload, RequestCountCost())
            with self.assertRaises(NoPlanError) as context:
                search.search_overlap([Index.simple(workload.model["items"])])
            self.assertEqual(context.exception.statement, workload["q1"])
        with self.subTest("Support query"):
            model = fixtures.users_regions()
            regions = model["regions"]
            query = fixtures.region_name_query(model)
            update = Update(regions, KeyPath.parse(model, "regions"), [regions["name"]],
                            [Condition(regions.id_field)], label="rename_region")
            search = Search(Workload(model, [query, update]), RequestCountCost())
            with self.assertRaises(NoPlanError) as context:
                search.search_overlap([query.materialize_view()])
            self.assertIs(context.exception.statement, update)

    def test_explicit_candidates(self) -> None:
        model = fixtures.users_regions()
        users, regions = model["users"], model["regions"]
        query = fixtures.region_name_query(model)
        region_of_user = Index([users.id_field], [regions.id_field], [], KeyPath.parse(model, "users.region"))
        results = Search(Workload(model, [query]), RequestCountCost()).search_overlap([region_of_user,
                                                                                      Index.simple(regions)])
        self.assertEqual(set(results.indexes), {region_of_user, Index.simple(regions)})
        self.assertEqual(results.total_cost, 2)

    def test_weights_scale_cost(self) -> None:
        workload = items_workload().with_weights({"q1": 3})
        results = Search(workload, RequestCountCost()).search_overlap()
        self.assertEqual(results.total_cost, 3 + 1)
        self.assertEqual(results.statement_cost(workload["q1"]), 1)

    def test_deterministic(self) -> None:
        model = fixtures.tweets()
        users, tweets = model["users"], model["tweets"]
        workload = Workload(model, [
            Query([tweets["body"]], KeyPath.parse(model, "tweets.user"), [Condition(users["city"])],
                  order=[tweets["timestamp"]], label="q1"),
            Query([users["username"]], KeyPath.parse(model, "users"), [Condition(users["city"])], label="q2"),
            Update(tweets, KeyPath.parse(model, "tweets"), [tweets["retweets"]], [Condition(tweets.id_field)],
                   label="u1"),
        ])
        first = Search(workload, RequestCountCost(), SearchSettings(max_workers=2)).search_overlap()
        second = Search(workload, RequestCountCost(), SearchSettings(max_workers=4)).search_overlap()
        self.assertEqual(first.indexes, second.indexes)
        self.assertEqual(first.total_cost, second.total_cost)

    def test_invalid_settings(self) -> None:
        with self.subTest("Negative budget"):
            self.assertRaises(ValueError, SearchSettings, max_space=-1)
        with self.subTest("Negative threshold"):
            self.assertRaises(ValueError, SearchSettings, merge_threshold=-0.5)
        with self.subTest("No workers"):
            self.assertRaises(ValueError, SearchSettings, max_workers=0)


class SearchResultsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.workload = items_workload()
        self.results = Search(self.workload, RequestCountCost()).search_overlap()

    def test_data_frames(self) -> None:
        plans = self.results.as_df()
        self.assertEqual(list(plans["label"]), ["q1", "q2"])
        self.assertEqual(list(plans["cost"]), [1, 1])
        self.assertEqual(list(plans["type"]), ["query", "query"])

        indexes = self.results.indexes_df()
        self.assertEqual(len(indexes), 1)
        self.assertEqual(indexes.loc[0, "size"], 44_000)

    def test_json_export(self) -> None:
        exported = json.loads(self.results.to_json())
        self.assertEqual(exported["total_cost"], 2)
        self.assertIsNone(exported["max_space"])
        self.assertEqual(len(exported["indexes"]), 1)
        self.assertEqual([statement["label"] for statement in exported["statements"]], ["q1", "q2"])

        buffer = io.StringIO()
        self.assertIsNone(self.results.to_json(buffer))
        self.assertEqual(json.loads(buffer.getvalue()), exported)

    def test_validation(self) -> None:
        self.results.validate()
        with self.subTest("Missing plan"):
            incomplete = SearchResults(self.workload, RequestCountCost(), self.results.indexes, {}, {})
            self.assertRaises(util.InvariantViolationError, incomplete.validate)
        with self.subTest("Unused index"):
            unused = Index.simple(self.workload.model["items"])
            wasteful = SearchResults(self.workload, RequestCountCost(), self.results.indexes + [unused],
                                     self.results.query_plans, self.results.update_plans)
            self.assertRaises(util.InvariantViolationError, wasteful.validate)
        with self.subTest("Over budget"):
            too_large = SearchResults(self.workload, RequestCountCost(), self.results.indexes, self.results.query_plans,
                                      self.results.update_plans, max_space=1)
            self.assertRaises(util.InvariantViolationError, too_large.validate)


if __name__ == "__main__":
    unittest.main()
