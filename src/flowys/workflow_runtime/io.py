"""
Workflow import/export.

The export envelope is {"version": 1, "exportedAt": ISO-8601, "workflow":
{name, description, nodes, edges}}. Workflow files for the CLI may also be
a bare definition and may be written in YAML.
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, ValidationError

from .errors import WorkflowImportError
from .models import WorkflowDefinition, WorkflowEdge, _WireModel


WORKFLOW_EXPORT_VERSION = 1
SUPPORTED_VERSIONS = (1,)


class WorkflowExport(_WireModel):
    """Versioned envelope around an exported workflow."""

    version: int = WORKFLOW_EXPORT_VERSION
    exported_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="exportedAt"
    )
    workflow: WorkflowDefinition


def create_workflow_export(definition: WorkflowDefinition) -> WorkflowExport:
    """Wrap a definition in a current-version export envelope."""
    return WorkflowExport(workflow=definition)


def workflow_to_json(export: WorkflowExport) -> str:
    return json.dumps(export.to_dict(), indent=2)


def _validate_envelope(data: Any) -> WorkflowExport:
    if not isinstance(data, dict):
        raise WorkflowImportError("Invalid workflow format")

    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise WorkflowImportError("Missing or invalid version number")
    if version not in SUPPORTED_VERSIONS:
        raise WorkflowImportError(f"Unsupported export version: {version}")

    workflow = data.get("workflow")
    if not isinstance(workflow, dict):
        raise WorkflowImportError("Missing workflow data")
    name = workflow.get("name")
    if not isinstance(name, str) or not name.strip():
        raise WorkflowImportError("Missing or invalid workflow name")
    if not isinstance(workflow.get("nodes"), list):
        raise WorkflowImportError("Missing or invalid nodes array")
    if not isinstance(workflow.get("edges"), list):
        raise WorkflowImportError("Missing or invalid edges array")

    try:
        return WorkflowExport.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise WorkflowImportError(
            f"Invalid workflow structure at {location}: {first.get('msg')}"
        ) from e


def parse_workflow_import(text: str) -> WorkflowExport:
    """
    Parse an exported workflow document.

    Raises:
        WorkflowImportError: On invalid JSON, an unknown version, or
            missing name, nodes or edges
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise WorkflowImportError("Invalid JSON format") from e
    return _validate_envelope(data)


def load_workflow(text: str) -> WorkflowDefinition:
    """
    Load a workflow file: an export envelope or a bare definition, in
    JSON or YAML.

    Raises:
        WorkflowImportError: If the document cannot be read
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise WorkflowImportError(f"Invalid workflow file: {e}") from e

    if isinstance(data, dict) and "workflow" in data:
        return _validate_envelope(data).workflow
    if not isinstance(data, dict):
        raise WorkflowImportError("Invalid workflow format")
    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as e:
        raise WorkflowImportError(f"Invalid workflow definition: {e}") from e


def remap_workflow_ids(
    definition: WorkflowDefinition,
    stamp: Optional[int] = None,
) -> WorkflowDefinition:
    """
    Copy of `definition` with fresh node and edge IDs.

    Node IDs become `<type>_<stamp>_<index>`; edge endpoints are remapped
    and placeholders referencing old node IDs are left as they are.
    """
    stamp = stamp if stamp is not None else int(time.time() * 1000)
    id_map: Dict[str, str] = {}
    nodes = []
    for index, node in enumerate(definition.nodes):
        new_id = f"{node.type.value}_{stamp}_{index}"
        id_map[node.id] = new_id
        nodes.append(node.model_copy(update={"id": new_id}))

    edges = [
        WorkflowEdge(
            id=f"edge_{stamp}_{index}",
            source=id_map.get(edge.source, edge.source),
            target=id_map.get(edge.target, edge.target),
            source_handle=edge.source_handle,
            target_handle=edge.target_handle,
        )
        for index, edge in enumerate(definition.edges)
    ]
    return definition.model_copy(update={"nodes": nodes, "edges": edges})


__all__ = [
    "WORKFLOW_EXPORT_VERSION",
    "WorkflowExport",
    "create_workflow_export",
    "workflow_to_json",
    "parse_workflow_import",
    "load_workflow",
    "remap_workflow_ids",
]
