"""
Command line interface for the workflow engine.

Commands:
- run: execute a workflow file
- validate: check a workflow's graph and node configs
- cost: estimate the credits a workflow can consume
- nodes: list the available node types
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from flowys.nodes import validate_node_config
from flowys.observability import setup_logging
from flowys.workflow_runtime import (
    WorkflowDefinition,
    WorkflowExecutor,
    WorkflowImportError,
    describe_node_types,
    estimate_workflow_cost,
    load_workflow,
    try_build,
)


def _load(path: str) -> WorkflowDefinition:
    """Read a JSON or YAML workflow file."""
    file_path = Path(path)
    if not file_path.exists():
        raise WorkflowImportError(f"Workflow file not found: {path}")
    return load_workflow(file_path.read_text(encoding="utf-8"))


def _parse_input(raw: Optional[str]) -> Any:
    """--input accepts inline JSON or @path to a JSON file."""
    if raw is None:
        return {}
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    return json.loads(raw)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_run(args: argparse.Namespace) -> int:
    """Execute a workflow and print its result."""
    setup_logging(stream=sys.stderr)

    try:
        definition = _load(args.workflow)
        workflow_input = _parse_input(args.input)
    except (WorkflowImportError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    executor = WorkflowExecutor()

    if args.stream:
        success = False
        for event in executor.stream(
            definition.nodes,
            definition.edges,
            input=workflow_input,
            timeout=args.timeout,
            workflow_name=definition.name,
        ):
            print(json.dumps({"event": event.event, "data": event.data}, default=str))
            if event.event == "completed":
                success = bool(event.data.get("success"))
        return 0 if success else 1

    result = executor.execute_definition(definition, workflow_input, timeout=args.timeout)
    _print_json(result.to_dict())
    return 0 if result.success else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Check graph structure and every node config without running anything."""
    try:
        definition = _load(args.workflow)
    except WorkflowImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    problems: List[str] = []
    structural = try_build(definition.nodes, definition.edges)
    if structural is not None:
        problems.append(str(structural))

    for node in definition.nodes:
        for error in validate_node_config(node.type, node.config):
            problems.append(f'Node "{node.label}" ({node.type.value}): {error}')

    if problems:
        print(f"{definition.name}: {len(problems)} problem(s)")
        for problem in problems:
            print(f"  - {problem}")
        return 1

    print(f"{definition.name}: OK ({len(definition.nodes)} nodes, {len(definition.edges)} edges)")
    return 0


def cmd_cost(args: argparse.Namespace) -> int:
    """Print the maximum credits a run of the workflow can use."""
    try:
        definition = _load(args.workflow)
    except WorkflowImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(estimate_workflow_cost(definition.nodes))
    return 0


def cmd_nodes(args: argparse.Namespace) -> int:
    """List node types with their credit cost."""
    catalog = describe_node_types()
    if args.json:
        _print_json(catalog)
        return 0
    for entry in catalog:
        print(f"{entry['type']:<12} {entry['credits']:>3} credits  {entry['description']}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="flowys",
        description="Flowys workflow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # run command
    run_parser = subparsers.add_parser("run", help="Execute a workflow file")
    run_parser.add_argument("workflow", help="Workflow file (.json, .yaml or export)")
    run_parser.add_argument("--input", help="Global input as JSON, or @file.json")
    run_parser.add_argument("--stream", action="store_true", help="Print events as nodes finish")
    run_parser.add_argument("--timeout", type=float, help="Abort the run after this many seconds")

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a workflow file")
    validate_parser.add_argument("workflow", help="Workflow file")

    # cost command
    cost_parser = subparsers.add_parser("cost", help="Estimate credits for a workflow")
    cost_parser.add_argument("workflow", help="Workflow file")

    # nodes command
    nodes_parser = subparsers.add_parser("nodes", help="List node types")
    nodes_parser.add_argument("--json", action="store_true", help="Print the full catalog as JSON")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "cost":
        return cmd_cost(args)
    elif args.command == "nodes":
        return cmd_nodes(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
