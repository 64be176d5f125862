"""The model package provides the entity-relationship schema that the advisor reasons about.

A `Model` consists of `Entity` instances, each of which owns typed `Field` objects. Entities are connected through pairs of
`ForeignKeyField` instances (a key and its reverse key). Together, the entities and their keys form the *model graph*, which is
available as a NetworkX graph via `Model.graph`.

Models are typically set up once, e.g. by some schema loader, and are treated as immutable afterwards:

>>> model = Model()
>>> users = model.add_entity(Entity("users", count=1000, fields=[IDField("id"), StringField("name", size=20)]))
>>> regions = model.add_entity(Entity("regions", count=10, fields=[IDField("id"), StringField("name")]))
>>> model.add_foreign_key(users, "region", regions, "users")
ForeignKeyField('users.region')
"""

from ._model import (
    BooleanField,
    DateField,
    Entity,
    EntityNotFoundError,
    Field,
    FieldNotFoundError,
    FloatField,
    ForeignKeyField,
    IDField,
    IntegerField,
    InvalidEntityError,
    Model,
    Relationship,
    StringField,
)

__all__ = [
    "BooleanField",
    "DateField",
    "Entity",
    "EntityNotFoundError",
    "Field",
    "FieldNotFoundError",
    "FloatField",
    "ForeignKeyField",
    "IDField",
    "IntegerField",
    "InvalidEntityError",
    "Model",
    "Relationship",
    "StringField",
]
