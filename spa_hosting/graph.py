"""Dependency-ordered provisioning graph.

Each node names the nodes it consumes. A node may only name inputs that were
declared before it, so the graph is acyclic by construction. Building the graph
hands every factory exactly the handles of its declared inputs.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .errors import GraphOrderError

NodeFactory = Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class GraphNode:
  """A named resource declaration with its input node names."""

  name: str
  inputs: tuple[str, ...]
  factory: NodeFactory = field(compare=False, repr=False)


class ProvisioningGraph:
  """Immutable-once-built, acyclic set of named provisioning nodes."""

  def __init__(self) -> None:
    self._nodes: dict[str, GraphNode] = {}
    self._handles: Mapping[str, Any] | None = None

  @property
  def order(self) -> tuple[str, ...]:
    return tuple(self._nodes)

  def node(self, name: str) -> GraphNode:
    return self._nodes[name]

  def add(self, name: str, factory: NodeFactory, *, inputs: tuple[str, ...] = ()) -> GraphNode:
    """Declare a node. Every input must already be declared."""
    if self._handles is not None:
      raise GraphOrderError(f"Cannot add {name!r}: graph has already been built")
    if name in self._nodes:
      raise GraphOrderError(f"Node {name!r} is already declared")
    missing = [i for i in inputs if i not in self._nodes]
    if missing:
      raise GraphOrderError(
        f"Node {name!r} depends on {', '.join(missing)} which must be declared first"
      )
    node = GraphNode(name=name, inputs=tuple(inputs), factory=factory)
    self._nodes[name] = node
    return node

  def build(self) -> Mapping[str, Any]:
    """Construct every node in declaration order and return the handles.

    Building twice returns the same handles.
    """
    if self._handles is not None:
      return self._handles

    handles: dict[str, Any] = {}
    for node in self._nodes.values():
      inputs = MappingProxyType({name: handles[name] for name in node.inputs})
      handles[node.name] = node.factory(inputs)

    self._handles = MappingProxyType(handles)
    return self._handles
