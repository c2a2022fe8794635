"""
Node graph submitted to ComfyUI as an API-format prompt.

Builders add nodes, wire them with ``NodeRef`` and bind the logical
parameters callers may change.  ``validate()`` checks that every reference
and binding points inside the graph before it is sent anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NamedTuple

from core.errors import ComfyUIError, ErrorKind


class NodeRef(NamedTuple):
    node_id: str
    output_index: int = 0


def ref(node_id: str, output_index: int = 0) -> NodeRef:
    return NodeRef(str(node_id), output_index)


@dataclass
class Node:
    class_type: str
    inputs: dict[str, Any] = field(default_factory=dict)
    title: str = ""

    def to_api(self) -> dict[str, Any]:
        inputs = {
            name: [value.node_id, value.output_index] if isinstance(value, NodeRef) else value
            for name, value in self.inputs.items()
        }
        return {
            "_meta": {"title": self.title or self.class_type},
            "class_type": self.class_type,
            "inputs": inputs,
        }


@dataclass(frozen=True)
class Binding:
    node_id: str
    field: str
    # Extra (node_id, field) targets that always carry the same value.
    mirrors: tuple[tuple[str, str], ...] = ()

    def targets(self) -> list[tuple[str, str]]:
        return [(self.node_id, self.field), *self.mirrors]


@dataclass
class WorkflowGraph:
    nodes: dict[str, Node] = field(default_factory=dict)
    bindings: dict[str, Binding] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)

    def add_node(
        self,
        node_id: str,
        class_type: str,
        inputs: dict[str, Any] | None = None,
        *,
        title: str = "",
    ) -> NodeRef:
        node_id = str(node_id)
        if node_id in self.nodes:
            raise ComfyUIError(
                ErrorKind.INVALID_WORKFLOW,
                f"Duplicate node id {node_id!r}",
                {"node_id": node_id},
            )
        self.nodes[node_id] = Node(class_type=class_type, inputs=dict(inputs or {}), title=title)
        return ref(node_id)

    def bind(self, name: str, node_id: str, field_name: str, value: Any) -> None:
        """Declare ``name`` as a settable parameter stored at node.inputs.field."""
        if name in self.bindings:
            raise ComfyUIError(
                ErrorKind.INVALID_WORKFLOW,
                f"Parameter {name!r} is already bound",
                {"parameter": name},
            )
        self.bindings[name] = Binding(str(node_id), field_name)
        self.set_input(name, value)

    def set_input(self, name: str, value: Any) -> None:
        binding = self.bindings.get(name)
        if binding is None:
            raise ComfyUIError(
                ErrorKind.INVALID_ARGS,
                f"Unknown workflow parameter {name!r}",
                {"parameter": name, "known": sorted(self.bindings)},
            )
        for node_id, field_name in binding.targets():
            node = self.nodes.get(node_id)
            if node is None:
                raise ComfyUIError(
                    ErrorKind.INVALID_WORKFLOW,
                    f"Parameter {name!r} is bound to missing node {node_id!r}",
                    {"parameter": name, "node_id": node_id},
                )
            node.inputs[field_name] = value

    def mirror(self, name: str, node_id: str, field_name: str) -> None:
        """Make an already bound parameter also write node.inputs.field."""
        binding = self.bindings.get(name)
        if binding is None:
            raise ComfyUIError(
                ErrorKind.INVALID_WORKFLOW,
                f"Cannot mirror unbound parameter {name!r}",
                {"parameter": name},
            )
        self.bindings[name] = Binding(
            binding.node_id,
            binding.field,
            (*binding.mirrors, (str(node_id), field_name)),
        )
        self.set_input(name, self.get_input(name))

    def get_input(self, name: str) -> Any:
        binding = self.bindings[name]
        return self.nodes[binding.node_id].inputs.get(binding.field)

    def set_output(self, name: str, node_id: str) -> None:
        self.outputs[name] = str(node_id)

    @property
    def parameter_names(self) -> list[str]:
        return list(self.bindings)

    def validate(self) -> WorkflowGraph:
        problems: list[str] = []
        for node_id, node in self.nodes.items():
            for input_name, value in node.inputs.items():
                if isinstance(value, NodeRef) and value.node_id not in self.nodes:
                    problems.append(f"{node_id}.{input_name} -> missing node {value.node_id}")
        for name, binding in self.bindings.items():
            for node_id, field_name in binding.targets():
                node = self.nodes.get(node_id)
                if node is None:
                    problems.append(f"parameter {name} -> missing node {node_id}")
                elif field_name not in node.inputs:
                    problems.append(f"parameter {name} -> {node_id}.{field_name} not set")
        for name, node_id in self.outputs.items():
            if node_id not in self.nodes:
                problems.append(f"output {name} -> missing node {node_id}")
        if problems:
            raise ComfyUIError(
                ErrorKind.INVALID_WORKFLOW,
                "Workflow graph has broken references",
                {"problems": problems},
            )
        return self

    def to_api(self) -> dict[str, Any]:
        return {node_id: node.to_api() for node_id, node in self.nodes.items()}

    def node_types(self) -> dict[str, str]:
        return {node_id: node.class_type for node_id, node in self.nodes.items()}
