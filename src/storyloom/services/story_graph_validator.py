"""Load-time story graph checks."""
from __future__ import annotations

from dataclasses import dataclass

from storyloom.core.logger import get_logger
from storyloom.data.errors import DataReferenceError, DataValidationError
from storyloom.domain.defs import SceneNodeDef, StoryEdgeDef
from storyloom.domain.expressions import ExpressionError, compile_expression
from storyloom.domain.story_graph import StoryGraph

logger = get_logger(__name__)

Severity = str

_STRUCTURE_CODES = {"MISSING_START_NODE", "MULTIPLE_START_NODES"}


@dataclass(frozen=True, slots=True)
class Issue:
    severity: Severity
    code: str
    message: str
    context: dict[str, str]


def format_issue(issue: Issue) -> str:
    context = " ".join(f"{key}={value}" for key, value in issue.context.items())
    suffix = f" ({context})" if context else ""
    return f"[{issue.severity}] {issue.code}: {issue.message}{suffix}"


def validate_story_graph(graph: StoryGraph) -> list[Issue]:
    """Collect the problems that would make traversal unsafe.

    Reachability and cycle analysis are authoring concerns and are not
    performed here.
    """
    issues: list[Issue] = []
    _validate_start_nodes(graph, issues)
    for edge in graph.edges.values():
        _validate_edge(graph, edge, issues)
    for node in graph.scene_nodes():
        _validate_scene(graph, node, issues)
    return issues


def ensure_valid_story_graph(graph: StoryGraph) -> None:
    """Raise a load error listing every ERROR issue; log warnings."""
    issues = validate_story_graph(graph)
    errors = [issue for issue in issues if issue.severity == "ERROR"]
    for issue in issues:
        if issue.severity != "ERROR":
            logger.warning(format_issue(issue))
    if not errors:
        return
    message = "Story graph failed validation:\n" + "\n".join(format_issue(issue) for issue in errors)
    if any(issue.code in _STRUCTURE_CODES for issue in errors):
        raise DataValidationError(message)
    raise DataReferenceError(message)


def _validate_start_nodes(graph: StoryGraph, issues: list[Issue]) -> None:
    starts = graph.start_nodes()
    if not starts:
        issues.append(
            Issue(
                severity="ERROR",
                code="MISSING_START_NODE",
                message="Story graph has no start node.",
                context={},
            )
        )
    elif len(starts) > 1:
        issues.append(
            Issue(
                severity="ERROR",
                code="MULTIPLE_START_NODES",
                message="Story graph must have exactly one start node.",
                context={"node_ids": ",".join(node.id for node in starts)},
            )
        )


def _validate_edge(graph: StoryGraph, edge: StoryEdgeDef, issues: list[Issue]) -> None:
    if edge.from_node_id not in graph:
        issues.append(
            Issue(
                severity="ERROR",
                code="EDGE_MISSING_SOURCE",
                message="Edge starts at a missing node.",
                context={"edge_id": edge.id, "referenced_id": edge.from_node_id},
            )
        )
    if edge.to_node_id not in graph:
        issues.append(
            Issue(
                severity="ERROR",
                code="EDGE_MISSING_TARGET",
                message="Edge points to a missing node.",
                context={"edge_id": edge.id, "referenced_id": edge.to_node_id},
            )
        )
    if edge.edge_type == "choice":
        if not edge.choice_id:
            issues.append(
                Issue(
                    severity="WARNING",
                    code="CHOICE_EDGE_WITHOUT_CHOICE_ID",
                    message="Choice edge has no choiceId and can never be taken.",
                    context={"edge_id": edge.id},
                )
            )
        else:
            source = graph.find_node(edge.from_node_id)
            if isinstance(source, SceneNodeDef) and all(
                choice.id != edge.choice_id for choice in source.choices
            ):
                issues.append(
                    Issue(
                        severity="WARNING",
                        code="CHOICE_EDGE_UNKNOWN_CHOICE",
                        message="Choice edge references a choice its source scene does not have.",
                        context={"edge_id": edge.id, "choice_id": edge.choice_id},
                    )
                )
    _validate_condition(edge.condition, {"edge_id": edge.id}, issues)


def _validate_scene(graph: StoryGraph, node: SceneNodeDef, issues: list[Issue]) -> None:
    for choice in node.choices:
        if choice.target_node_id is not None and choice.target_node_id not in graph:
            issues.append(
                Issue(
                    severity="ERROR",
                    code="CHOICE_TARGET_MISSING",
                    message="Choice points to a missing node.",
                    context={
                        "node_id": node.id,
                        "choice_id": choice.id,
                        "referenced_id": choice.target_node_id,
                    },
                )
            )
        _validate_condition(choice.condition, {"node_id": node.id, "choice_id": choice.id}, issues)


def _validate_condition(condition: str | None, context: dict[str, str], issues: list[Issue]) -> None:
    if condition is None or not condition.strip():
        return
    try:
        compile_expression(condition)
    except ExpressionError as exc:
        issues.append(
            Issue(
                severity="WARNING",
                code="INVALID_CONDITION",
                message=f"Condition will always evaluate to false: {exc}",
                context={**context, "condition": str(condition)},
            )
        )
