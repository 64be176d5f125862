"""Tests for the index abstraction, in particular its structural invariants and size estimates."""
from __future__ import annotations

import unittest

from nosqladvisor.indexes import Index, InvalidIndexError, materialize_view, total_size
from nosqladvisor.qal import Condition, KeyPath, Query
from tests import fixtures


class IndexStructureTests(unittest.TestCase):
    def test_simple_index(self) -> None:
        model = fixtures.users_regions()
        users, regions = model["users"], model["regions"]
        with self.subTest("Foreign key to one row is stored"):
            index = Index.simple(users)
            self.assertEqual(index.hash_fields, {users.id_field})
            self.assertEqual(index.order_fields, ())
            self.assertEqual(index.extra, {users["name"], users["region"]})
            self.assertTrue(index.identity)
        with self.subTest("Foreign key to many rows is skipped"):
            index = Index.simple(regions)
            self.assertEqual(index.extra, {regions["name"]})

    def test_invalid_indexes(self) -> None:
        model = fixtures.tweets()
        users, tweets, links = model["users"], model["tweets"], model["links"]
        users_path = KeyPath.parse(model, "users")
        full_path = KeyPath.parse(model, "users.tweets.links")
        with self.subTest("Empty hash fields"):
            self.assertRaises(InvalidIndexError, Index, [], [users.id_field], [], users_path)
        with self.subTest("Hash fields of multiple entities"):
            self.assertRaises(InvalidIndexError, Index, [users.id_field, tweets.id_field], [links.id_field], [], full_path)
        with self.subTest("Overlapping fields"):
            self.assertRaises(InvalidIndexError, Index, [users.id_field], [users.id_field], [], users_path)
            self.assertRaises(InvalidIndexError, Index, [users.id_field], [users["city"]], [users["city"]], users_path)
        with self.subTest("Duplicate order fields"):
            self.assertRaises(InvalidIndexError, Index, [users["city"]], [users.id_field, users.id_field], [], users_path)
        with self.subTest("Field outside of path"):
            self.assertRaises(InvalidIndexError, Index, [users.id_field], [], [tweets["body"]], users_path)
        with self.subTest("Hash entity in the middle of the path"):
            self.assertRaises(InvalidIndexError, Index, [tweets.id_field], [users.id_field, links.id_field], [], full_path)
        with self.subTest("Missing entity ID"):
            self.assertRaises(InvalidIndexError, Index, [users.id_field], [links.id_field], [], full_path)

    def test_path_direction(self) -> None:
        model = fixtures.users_regions()
        users, regions = model["users"], model["regions"]
        forward = Index([users.id_field], [regions.id_field], [regions["name"]], KeyPath.parse(model, "users.region"))
        backward = Index([users.id_field], [regions.id_field], [regions["name"]], KeyPath.parse(model, "regions.users"))
        self.assertEqual(forward, backward)
        self.assertEqual(hash(forward), hash(backward))
        self.assertEqual(forward.key, backward.key)
        self.assertEqual(backward.path.first, users)
        self.assertEqual(backward.hash_entity, users)

    def test_key_distinguishes_roles(self) -> None:
        model = fixtures.items()
        items = model["items"]
        path = KeyPath.parse(model, "items")
        by_category = Index([items["category"]], [items.id_field], [items["name"]], path)
        with_name_key = Index([items["category"]], [items.id_field, items["name"]], [], path)
        self.assertNotEqual(by_category, with_name_key)
        self.assertNotEqual(by_category.key, with_name_key.key)
        self.assertTrue(by_category.key.startswith("i"))


class IndexEstimateTests(unittest.TestCase):
    def test_materialized_view(self) -> None:
        model = fixtures.users_regions()
        users, regions = model["users"], model["regions"]
        view = materialize_view(fixtures.region_name_query(model))
        self.assertEqual(view.hash_fields, {users.id_field})
        self.assertEqual(view.order_fields, (regions.id_field,))
        self.assertEqual(view.extra, {regions["name"]})
        self.assertEqual(view, fixtures.region_name_query(model).materialize_view())

    def test_materialized_view_with_range_and_order(self) -> None:
        model = fixtures.items()
        items = model["items"]
        query = Query([items["name"]], KeyPath.parse(model, "items"),
                      [Condition(items["category"]), Condition(items["price"], ">")], order=[items["price"]])
        view = materialize_view(query)
        self.assertEqual(view.hash_fields, {items["category"]})
        self.assertEqual(view.order_fields, (items["price"], items.id_field))
        self.assertEqual(view.extra, {items["name"]})

    def test_sizes(self) -> None:
        model = fixtures.users_regions()
        view = materialize_view(fixtures.region_name_query(model))
        self.assertEqual(view.entries, 1000)
        self.assertEqual(view.entry_size, 16 + 16 + 10)
        self.assertEqual(view.size, 42_000)
        self.assertEqual(view.hash_count, 1000)
        self.assertEqual(view.per_hash_count, 1)

        simple = Index.simple(model["regions"])
        self.assertEqual(simple.size, 10 * (16 + 10))
        self.assertEqual(total_size([view, simple]), 42_000 + 260)

    def test_partition_estimates(self) -> None:
        model = fixtures.items()
        items = model["items"]
        index = Index([items["category"]], [items.id_field], [items["name"]], KeyPath.parse(model, "items"))
        self.assertEqual(index.hash_count, 10)
        self.assertEqual(index.per_hash_count, 100)


class IndexMergeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = fixtures.items()
        items = self.model["items"]
        self.items = items
        self.path = KeyPath.parse(self.model, "items")
        self.names = Index([items["category"]], [items.id_field], [items["name"]], self.path)
        self.prices = Index([items["category"]], [items.id_field], [items["price"]], self.path)

    def test_merge(self) -> None:
        self.assertTrue(self.names.can_merge(self.prices))
        merged = self.names.merge(self.prices)
        self.assertEqual(merged.extra, {self.items["name"], self.items["price"]})
        self.assertEqual(merged.order_fields, (self.items.id_field,))
        self.assertEqual(merged.size, 1000 * (10 + 16 + 10 + 8))

    def test_merge_with_longer_order(self) -> None:
        sorted_prices = Index([self.items["category"]], [self.items.id_field, self.items["price"]], [], self.path)
        self.assertTrue(self.names.can_merge(sorted_prices))
        merged = self.names.merge(sorted_prices)
        self.assertEqual(merged.order_fields, (self.items.id_field, self.items["price"]))
        self.assertEqual(merged.extra, {self.items["name"]})

    def test_unmergeable(self) -> None:
        by_id = Index([self.items.id_field], [], [self.items["name"]], self.path)
        with self.subTest("Different hash fields"):
            self.assertFalse(self.names.can_merge(by_id))
            self.assertRaises(InvalidIndexError, self.names.merge, by_id)
        with self.subTest("Identical indexes"):
            self.assertFalse(self.names.can_merge(self.names))
        with self.subTest("Diverging order fields"):
            by_price = Index([self.items["category"]], [self.items["price"], self.items.id_field], [], self.path)
            self.assertFalse(self.names.can_merge(by_price))


if __name__ == "__main__":
    unittest.main()
