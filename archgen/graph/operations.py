"""
Graph Operation Vocabulary for ArchGen.

The agent edits the diagram through seven operation kinds. Each kind is a
pydantic model tagged by its ``name`` field; ``Operation`` is the discriminated
union over all of them, so a decoded operation is always exactly one concrete
type.

Field names follow the wire format the model is prompted with
(``nodename``, ``parentId``, ``sourceId`` ...). Unknown extra keys are ignored.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _OperationBase(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class AddNode(_OperationBase):
    """Create ``nodename`` under ``parentId``."""
    name: Literal["add_node"] = "add_node"
    nodename: str = Field(..., min_length=1)
    parentId: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return {} if value is None else value


class DeleteNode(_OperationBase):
    """Delete ``nodeId`` with its whole subtree and every edge touching it."""
    name: Literal["delete_node"] = "delete_node"
    nodeId: str = Field(..., min_length=1)


class MoveNode(_OperationBase):
    """Re-parent ``nodeId`` under ``newParentId``."""
    name: Literal["move_node"] = "move_node"
    nodeId: str = Field(..., min_length=1)
    newParentId: str = Field(..., min_length=1)


class AddEdge(_OperationBase):
    """Connect ``sourceId`` to ``targetId``."""
    name: Literal["add_edge"] = "add_edge"
    edgeId: str = Field(..., min_length=1)
    sourceId: str = Field(..., min_length=1)
    targetId: str = Field(..., min_length=1)
    label: Optional[str] = None


class DeleteEdge(_OperationBase):
    name: Literal["delete_edge"] = "delete_edge"
    edgeId: str = Field(..., min_length=1)


class GroupNodes(_OperationBase):
    """Create container ``groupId`` under ``parentId`` and move ``nodeIds`` into it."""
    name: Literal["group_nodes"] = "group_nodes"
    nodeIds: List[str] = Field(..., min_length=1)
    parentId: str = Field(..., min_length=1)
    groupId: str = Field(..., min_length=1)
    style: Optional[Any] = None
    groupIconName: Optional[str] = None


class RemoveGroup(_OperationBase):
    """Promote the children of ``groupId`` to its parent and delete it."""
    name: Literal["remove_group"] = "remove_group"
    groupId: str = Field(..., min_length=1)


Operation = Annotated[
    Union[AddNode, DeleteNode, MoveNode, AddEdge, DeleteEdge, GroupNodes, RemoveGroup],
    Field(discriminator="name"),
]

OPERATION_TYPES = (AddNode, DeleteNode, MoveNode, AddEdge, DeleteEdge, GroupNodes, RemoveGroup)

OPERATION_NAMES: List[str] = [op.model_fields["name"].default for op in OPERATION_TYPES]


__all__ = [
    "AddNode",
    "DeleteNode",
    "MoveNode",
    "AddEdge",
    "DeleteEdge",
    "GroupNodes",
    "RemoveGroup",
    "Operation",
    "OPERATION_TYPES",
    "OPERATION_NAMES",
]
