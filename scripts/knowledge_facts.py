#!/usr/bin/env python3
"""
Knowledge items and the fact-writing convention used by every handler.

The knowledge base has no atomic "set polarity" call. A fact is written as
two updates: ADD the chosen polarity, then REMOVE the opposite polarity
with the same arguments. FactWriter.set_fact_polarity is the only place
that issues that pair.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from action_dispatch import KeyValue
from action_interfaces import KnowledgeBaseError, KnowledgeClient, UpdateType

logger = logging.getLogger(__name__)

INSTANCE = 0
FACT = 1


@dataclass
class KnowledgeItem:
    knowledge_type: int = FACT
    instance_type: str = ""
    instance_name: str = ""
    attribute_name: str = ""
    values: List[KeyValue] = field(default_factory=list)
    is_negative: bool = False

    def arguments(self) -> List[Tuple[str, str]]:
        return [(kv.key, kv.value) for kv in self.values]

    def describe(self) -> str:
        if self.knowledge_type == INSTANCE:
            return f"{self.instance_type} {self.instance_name}"
        args = " ".join(kv.value for kv in self.values)
        text = f"({self.attribute_name} {args})" if args else f"({self.attribute_name})"
        return f"NOT {text}" if self.is_negative else text


def fact(attribute_name: str, args: Sequence[Tuple[str, str]] = (),
         negative: bool = False) -> KnowledgeItem:
    return KnowledgeItem(
        knowledge_type=FACT,
        attribute_name=attribute_name,
        values=[KeyValue(key=k, value=v) for k, v in args],
        is_negative=negative,
    )


def instance(type_name: str, name: str) -> KnowledgeItem:
    return KnowledgeItem(knowledge_type=INSTANCE, instance_type=type_name, instance_name=name)


class FactWriter:
    """Knowledge-base writes on top of a KnowledgeClient."""

    def __init__(self, client: KnowledgeClient):
        self.client = client

    def set_fact_polarity(self, attribute_name: str,
                          args: Sequence[Tuple[str, str]] = (),
                          negative: bool = False) -> KnowledgeItem:
        """
        Assert a fact with the given polarity and retract the opposite one.

        Raises KnowledgeBaseError if either update fails. When the ADD fails
        the REMOVE is not attempted.
        """
        asserted = fact(attribute_name, args, negative)
        self.client.update(UpdateType.ADD_KNOWLEDGE, asserted)
        logger.info("Added %s to the knowledge base.", asserted.describe())

        opposite = fact(attribute_name, args, not negative)
        self.client.update(UpdateType.REMOVE_KNOWLEDGE, opposite)
        logger.info("Removed %s from the knowledge base.", opposite.describe())
        return asserted

    def add_instance(self, type_name: str, name: str) -> None:
        self.client.update(UpdateType.ADD_KNOWLEDGE, instance(type_name, name))

    def remove_instance(self, type_name: str, name: str) -> None:
        self.client.update(UpdateType.REMOVE_KNOWLEDGE, instance(type_name, name))

    def holds(self, attribute_name: str, args: Sequence[Tuple[str, str]] = ()) -> bool:
        """Query a single positive fact."""
        results = self.client.query([fact(attribute_name, args)])
        if not results:
            raise KnowledgeBaseError(f"Empty query answer for ({attribute_name})")
        return bool(results[0])

    def objects_with(self, attribute_name: str, key: str) -> List[str]:
        """Values bound to ``key`` across all current facts of a predicate."""
        names = []
        for item in self.client.get_attribute(attribute_name):
            for kv in item.values:
                if kv.key == key:
                    names.append(kv.value)
        return names
