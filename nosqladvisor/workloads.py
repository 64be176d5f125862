"""Provides the abstraction to represent an entire workload of statements.

A `Workload` bundles the `Model` that the statements operate on with the statements themselves. Each statement is
identified by a label and annotated by a weight that describes how frequently (or how important) the statement is relative
to the other statements of the workload. The advisor minimizes the weighted sum of the statement costs.

Workloads are constructed once and then passed explicitly to the enumerator, the planners and the search. There is no global
workload state.
"""

from __future__ import annotations

import collections
import numbers
import warnings
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Optional

import natsort

from . import util
from .indexes import Index
from .model import Model
from .qal import Query, Statement, SupportQuery, UpdateStatement


class Workload(collections.UserDict[str, Statement]):
    """A workload collects the statements that the advisor optimizes the schema for.

    Each statement is annotated by a label that can be used to retrieve the statement. Since the workload inherits from dict,
    the label can be used directly to fetch the associated statement (and will raise ``KeyError`` instances for unknown
    labels). Methods that iterate over the statements return them in the natural order of their labels, e.g. *q2* comes
    before *q10*.

    A workload is implemented as an immutable data object. All methods that mutate the contents instead provide new workload
    instances.

    Parameters
    ----------
    model : Model
        The model that the statements operate on
    statements : Mapping[str, Statement] | Iterable[Statement], optional
        The statements of the workload. If no labels are given, the labels of the statements are used. Statements without
        a label are numbered consecutively (*s1*, *s2*, ...).
    weights : Optional[Mapping[str, float]], optional
        The weights of the statements, indexed by label. Statements without an explicit weight receive a weight of 1.
    name : str, optional
        A name that can be used to identify the workload, by default ``""``.

    Raises
    ------
    ValueError
        If a statement references an entity that is not part of the model, a weight is negative, a weight refers to an
        unknown label, multiple statements share the same label, or the same statement is contained under multiple
        labels.
    """

    def __init__(self, model: Model, statements: Mapping[str, Statement] | Iterable[Statement] = (), *,
                 weights: Optional[Mapping[str, float]] = None, name: str = "") -> None:
        super().__init__(self._label_statements(statements))
        self._model = model
        self._name = name

        weights = dict(weights) if weights else {}
        unknown_labels = [label for label in weights if label not in self.data]
        if unknown_labels:
            raise ValueError(f"Weights for unknown statements: {', '.join(map(str, unknown_labels))}")
        self._weights = {label: weights.get(label, 1.0) for label in self.data}
        self._validate()

        self._sorted_labels: list[str] = natsort.natsorted(self.data.keys())
        self._sorted_statements = [self.data[label] for label in self._sorted_labels]
        self._label_mapping = util.dicts.invert(self.data)

    @staticmethod
    def _label_statements(statements: Mapping[str, Statement] | Iterable[Statement]) -> dict[str, Statement]:
        if isinstance(statements, Mapping):
            return dict(statements)
        labelled: dict[str, Statement] = {}
        for i, statement in enumerate(statements, start=1):
            label = statement.label or f"s{i}"
            if label in labelled:
                raise ValueError(f"Duplicate statement label: '{label}'")
            labelled[label] = statement
        return labelled

    def _validate(self) -> None:
        labels: dict[Statement, str] = {}
        for label, statement in self.data.items():
            if statement in labels:
                raise ValueError(f"Statements '{labels[statement]}' and '{label}' are identical")
            labels[statement] = label
        for label, statement in self.data.items():
            for entity in statement.key_path.entities:
                if entity.name not in self._model or self._model[entity.name] != entity:
                    raise ValueError(f"Statement '{label}' references entity {entity} which is not part of the model")
        for label, weight in self._weights.items():
            if not isinstance(weight, numbers.Real) or weight < 0:
                raise ValueError(f"Weight of statement '{label}' must be a non-negative number, not {weight}")
            if weight == 0:
                warnings.warn(f"Statement '{label}' has weight 0 and does not influence the search")

    @property
    def model(self) -> Model:
        """Get the model that the statements operate on."""
        return self._model

    @property
    def name(self) -> str:
        """Provides the name of the workload.

        Returns
        -------
        str
            The name or an empty string if no name has been specified.
        """
        return self._name

    def labels(self) -> Sequence[str]:
        """Provides all statement labels of the workload in natural order."""
        return list(self._sorted_labels)

    def statements(self) -> Sequence[Statement]:
        """Provides all statements of the workload in natural order (according to their labels)."""
        return list(self._sorted_statements)

    def entries(self) -> Sequence[tuple[str, Statement]]:
        """Provides all (label, statement) pairs in the workload, in natural order of the labels."""
        return list(zip(self._sorted_labels, self._sorted_statements))

    def queries(self) -> Sequence[Query]:
        """Provides all queries of the workload in natural order. Updates, inserts and deletes are skipped."""
        return [statement for statement in self._sorted_statements if isinstance(statement, Query)]

    def updates(self) -> Sequence[UpdateStatement]:
        """Provides all statements that modify data in natural order. This includes inserts and deletes."""
        return [statement for statement in self._sorted_statements if isinstance(statement, UpdateStatement)]

    def label_of(self, statement: Statement) -> str:
        """Provides the label of the given statement.

        Parameters
        ----------
        statement : Statement
            The statement to check

        Returns
        -------
        str
            The corresponding label

        Raises
        ------
        KeyError
            If the statement is not part of the workload
        """
        return self._label_mapping[statement]

    def weight(self, statement: str | Statement) -> float:
        """Provides the weight of a statement.

        Parameters
        ----------
        statement : str | Statement
            The statement or its label

        Returns
        -------
        float
            The weight

        Raises
        ------
        KeyError
            If the statement is not part of the workload
        """
        label = statement if isinstance(statement, str) else self.label_of(statement)
        return self._weights[label]

    def weights(self) -> dict[str, float]:
        """Provides the weights of all statements, indexed by label in natural order."""
        return {label: self._weights[label] for label in self._sorted_labels}

    def support_queries(self, indexes: Iterable[Index]) -> list[SupportQuery]:
        """Provides the support queries of all updates for the indexes that they modify.

        Parameters
        ----------
        indexes : Iterable[Index]
            The indexes to maintain

        Returns
        -------
        list[SupportQuery]
            The distinct support queries, grouped by update (in natural order) and index (in the order of the input)
        """
        indexes = list(indexes)
        queries: dict[SupportQuery, None] = {}
        for update in self.updates():
            for index in indexes:
                if update.modifies_index(index):
                    queries.update(dict.fromkeys(update.support_queries(index)))
        return list(queries)

    def with_labels(self, labels: Iterable[str]) -> Workload:
        """Provides a new workload that contains only the statements with the specified labels."""
        labels = set(labels)
        return self._derive({label: statement for label, statement in self.data.items() if label in labels})

    def filter_by(self, predicate: Callable[[str, Statement], bool]) -> Workload:
        """Provides all statements from the workload that match a specific predicate.

        Parameters
        ----------
        predicate : Callable[[str, Statement], bool]
            The filter condition. It receives the label and the statement.

        Returns
        -------
        Workload
            All statements that passed the filter condition check, with their original weights
        """
        return self._derive({label: statement for label, statement in self.data.items() if predicate(label, statement)})

    def without_updates(self) -> Workload:
        """Provides a new workload that only consists of the queries of this workload."""
        return self.filter_by(lambda _, statement: isinstance(statement, Query))

    def with_weights(self, weights: Mapping[str, float]) -> Workload:
        """Provides a new workload with changed weights. Statements that are not mentioned retain their current weight."""
        return Workload(self._model, self.data, weights=self._weights | dict(weights), name=self._name)

    def _derive(self, statements: dict[str, Statement]) -> Workload:
        weights = {label: self._weights[label] for label in statements}
        return Workload(self._model, statements, weights=weights, name=self._name)

    def __add__(self, other: Workload) -> Workload:
        if not isinstance(other, Workload):
            raise TypeError("Can only add workloads together")
        if other.model is not self._model:
            raise ValueError("Can only add workloads that share the same model")
        # retain own labels and weights in case of conflict
        statements = other.data | self.data
        weights = other.weights() | self.weights()
        return Workload(self._model, statements, weights=weights, name=self._name)

    def __json__(self) -> util.jsondict:
        return {"name": self._name, "model": self._model,
                "statements": [{"label": label, "weight": self._weights[label], "statement": statement}
                               for label, statement in self.entries()]}

    def __repr__(self) -> str:
        return str(self)

    def __str__(self) -> str:
        if self._name:
            return f"Workload: {self._name} ({len(self)} statements)"
        return f"Workload: {len(self)} statements"
