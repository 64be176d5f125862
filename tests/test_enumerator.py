"""Tests for the candidate enumeration."""
from __future__ import annotations

import unittest

from nosqladvisor.enumerator import IndexEnumerator
from nosqladvisor.indexes import Index
from nosqladvisor.qal import Condition, KeyPath, Query, Update
from nosqladvisor.workloads import Workload
from tests import fixtures


class QueryEnumerationTests(unittest.TestCase):
    def test_single_entity_candidates(self) -> None:
        model = fixtures.items()
        items = model["items"]
        path = KeyPath.parse(model, "items")
        query = fixtures.items_by_category(model, "name")
        candidates = IndexEnumerator(Workload(model, [query])).indexes_for_query(query)

        expected = [Index([items["category"]], [items.id_field], [], path),
                    Index([items["category"]], [items.id_field], [items["name"]], path),
                    Index([items.id_field], [items["category"]], [], path),
                    Index([items.id_field], [items["category"]], [items["name"]], path)]
        self.assertEqual(candidates, expected)
        self.assertIn(query.materialize_view(), candidates)

    def test_candidates_stay_on_path(self) -> None:
        model = fixtures.tweets()
        query = Query([model.find_field("links.url")], KeyPath.parse(model, "users.tweets.links"),
                      [Condition(model.find_field("users.city"))], label="links_of_city")
        candidates = IndexEnumerator(Workload(model, [query])).indexes_for_query(query)
        query_entities = set(query.key_path.entities)
        self.assertIn(query.materialize_view(), candidates)
        self.assertEqual(len(candidates), len(set(candidates)))
        for index in candidates:
            with self.subTest("Candidate", index=str(index)):
                self.assertLessEqual(set(index.path.entities), query_entities)
                self.assertIn(index.hash_entity, (index.path.first, index.path.last))

    def test_range_and_order_choices(self) -> None:
        model = fixtures.items()
        items = model["items"]
        query = Query([items["name"]], KeyPath.parse(model, "items"),
                      [Condition(items["category"]), Condition(items["price"], ">")], order=[items["price"]])
        candidates = IndexEnumerator(Workload(model, [query])).indexes_for_query(query)
        order_fields = {index.order_fields for index in candidates if index.hash_fields == {items["category"]}}
        self.assertIn((items.id_field,), order_fields)
        self.assertIn((items["price"], items.id_field), order_fields)


class WorkloadEnumerationTests(unittest.TestCase):
    def test_combined_indexes(self) -> None:
        model = fixtures.items()
        items = model["items"]
        workload = Workload(model, [fixtures.items_by_category(model, "name", label="q1"),
                                    fixtures.items_by_category(model, "price", label="q2")])
        candidates = IndexEnumerator(workload).indexes_for_workload()
        combined = Index([items["category"]], [items.id_field], [items["name"], items["price"]],
                         KeyPath.parse(model, "items"))
        self.assertIn(combined, candidates)

    def test_update_candidates(self) -> None:
        model = fixtures.users_regions()
        regions = model["regions"]
        query = fixtures.region_name_query(model)
        update = Update(regions, KeyPath.parse(model, "regions"), [regions["name"]], [Condition(regions.id_field)],
                        label="rename_region")
        candidates = IndexEnumerator(Workload(model, [query, update])).indexes_for_workload()

        with self.subTest("Simple index of updated entity"):
            self.assertIn(Index.simple(regions), candidates)
        with self.subTest("Index for support query"):
            users_of_region = Index([regions.id_field], [model["users"].id_field], [],
                                    KeyPath.parse(model, "regions.users"))
            self.assertIn(users_of_region, candidates)

    def test_additional_indexes(self) -> None:
        model = fixtures.users_regions()
        extra = Index.simple(model["users"])
        candidates = IndexEnumerator(Workload(model, [fixtures.region_name_query(model)])).indexes_for_workload([extra])
        self.assertEqual(candidates[0], extra)

    def test_enumeration_is_idempotent(self) -> None:
        model = fixtures.tweets()
        users, tweets = model["users"], model["tweets"]
        statements = [
            Query([tweets["body"]], KeyPath.parse(model, "tweets.user"), [Condition(users["city"])],
                  order=[tweets["timestamp"]], limit=10, label="q1"),
            Query([model.find_field("links.url")], KeyPath.parse(model, "links.tweet"), [Condition(tweets.id_field)],
                  label="q2"),
            Update(tweets, KeyPath.parse(model, "tweets"), [tweets["retweets"]], [Condition(tweets.id_field)], label="u1"),
        ]
        workload = Workload(model, statements)
        first = IndexEnumerator(workload).indexes_for_workload()
        second = IndexEnumerator(workload).indexes_for_workload()
        self.assertEqual(first, second)
        self.assertEqual(len(first), len(set(first)))


if __name__ == "__main__":
    unittest.main()
