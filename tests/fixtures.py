"""Small example models and workloads that are shared by the different test cases."""
from __future__ import annotations

from nosqladvisor.model import (
    DateField,
    Entity,
    FloatField,
    IDField,
    IntegerField,
    Model,
    StringField,
)
from nosqladvisor.qal import Condition, KeyPath, Query


def users_regions() -> Model:
    """Users that live in regions: *users(id, name, region -> regions)* and *regions(id, name)*."""
    model = Model()
    users = model.add_entity(Entity("users", count=1000, fields=[IDField("id"), StringField("name", size=20)]))
    regions = model.add_entity(Entity("regions", count=10, fields=[IDField("id"), StringField("name")]))
    model.add_foreign_key(users, "region", regions, "users")
    return model


def region_name_query(model: Model) -> Query:
    """SELECT regions.name FROM regions.users WHERE users.id = ?"""
    return Query([model.find_field("regions.name")], KeyPath.parse(model, "regions.users"),
                 [Condition(model.find_field("users.id"))], label="region_name")


def items() -> Model:
    """A single entity *items(id, name, price, category)* with 10 distinct categories."""
    model = Model()
    model.add_entity(Entity("items", count=1000, fields=[IDField("id"), StringField("name"), FloatField("price"),
                                                         StringField("category", count=10)]))
    return model


def items_by_category(model: Model, field: str, *, label: str = "") -> Query:
    """SELECT items.<field> FROM items WHERE items.category = ?"""
    return Query([model.find_field(f"items.{field}")], KeyPath.parse(model, "items"),
                 [Condition(model.find_field("items.category"))], label=label)


def tweets() -> Model:
    """A small social network: users post tweets, tweets contain links.

    *users(id, username, city)*, *tweets(id, body, timestamp, retweets, user -> users)* and
    *links(id, url, tweet -> tweets)*.
    """
    model = Model()
    users = model.add_entity(Entity("users", count=10_000, fields=[IDField("id"), StringField("username", size=20),
                                                                   StringField("city", count=100)]))
    tweets = model.add_entity(Entity("tweets", count=100_000, fields=[IDField("id"), StringField("body", size=140),
                                                                      DateField("timestamp"),
                                                                      IntegerField("retweets", count=50)]))
    links = model.add_entity(Entity("links", count=50_000, fields=[IDField("id"), StringField("url", size=40)]))
    model.add_foreign_key(tweets, "user", users, "tweets")
    model.add_foreign_key(links, "tweet", tweets, "links")
    return model
