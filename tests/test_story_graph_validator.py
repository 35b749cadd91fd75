import logging

import pytest

from storyloom.data.errors import DataReferenceError, DataValidationError
from storyloom.services.story_graph_validator import (
    Issue,
    ensure_valid_story_graph,
    format_issue,
    validate_story_graph,
)
from tests.helpers.story_docs import (
    branching_story,
    build_graph,
    choice,
    choice_edge,
    end,
    flow,
    linear_story,
    scene,
    start,
    story,
)


def _codes(issues: list[Issue]) -> list[str]:
    return [issue.code for issue in issues]


def test_valid_stories_have_no_issues() -> None:
    assert validate_story_graph(build_graph(linear_story())) == []
    assert validate_story_graph(build_graph(branching_story())) == []


def test_missing_start_node_is_reported() -> None:
    graph = build_graph(story([scene("a", "Hi.")], []))

    assert _codes(validate_story_graph(graph)) == ["MISSING_START_NODE"]


def test_multiple_start_nodes_are_reported() -> None:
    graph = build_graph(story([start("s1"), start("s2"), scene("a", "Hi.")], [flow("e1", "s1", "a")]))

    issues = validate_story_graph(graph)
    assert _codes(issues) == ["MULTIPLE_START_NODES"]
    assert issues[0].context == {"node_ids": "s1,s2"}


def test_dangling_edges_are_reported() -> None:
    graph = build_graph(
        story(
            [start(), scene("a", "Hi.")],
            [flow("e1", "start", "a"), flow("e2", "ghost", "a"), flow("e3", "a", "void")],
        )
    )

    issues = validate_story_graph(graph)
    assert _codes(issues) == ["EDGE_MISSING_SOURCE", "EDGE_MISSING_TARGET"]
    assert issues[1].context == {"edge_id": "e3", "referenced_id": "void"}


def test_choice_with_missing_target_is_reported() -> None:
    graph = build_graph(
        story(
            [start(), scene("a", "Hi.", choices=[choice("c1", "Go", "nowhere")])],
            [flow("e1", "start", "a")],
        )
    )

    assert _codes(validate_story_graph(graph)) == ["CHOICE_TARGET_MISSING"]


def test_choice_edge_problems_are_warnings() -> None:
    graph = build_graph(
        story(
            [start(), scene("a", "Hi.", choices=[choice("c1", "Go")]), end()],
            [
                flow("e1", "start", "a"),
                {"id": "e2", "from": "a", "to": "end", "edgeType": "choice"},
                choice_edge("e3", "a", "end", "c9"),
                choice_edge("e4", "a", "end", "c1"),
            ],
        )
    )

    issues = validate_story_graph(graph)
    assert _codes(issues) == ["CHOICE_EDGE_WITHOUT_CHOICE_ID", "CHOICE_EDGE_UNKNOWN_CHOICE"]
    assert {issue.severity for issue in issues} == {"WARNING"}


def test_invalid_condition_is_a_warning() -> None:
    graph = build_graph(
        story(
            [
                start(),
                scene("a", "Hi.", choices=[choice("c1", "Go", "b", condition="gold >")]),
                scene("b", "B."),
            ],
            [flow("e1", "start", "a", condition="(")],
        )
    )

    issues = validate_story_graph(graph)
    assert _codes(issues) == ["INVALID_CONDITION", "INVALID_CONDITION"]
    assert issues[0].context["edge_id"] == "e1"
    assert issues[1].context["choice_id"] == "c1"


def test_format_issue_includes_context() -> None:
    issue = Issue(
        severity="ERROR",
        code="EDGE_MISSING_TARGET",
        message="Edge points to a missing node.",
        context={"edge_id": "e3"},
    )

    assert format_issue(issue) == "[ERROR] EDGE_MISSING_TARGET: Edge points to a missing node. (edge_id=e3)"


def test_ensure_valid_raises_validation_error_for_structure() -> None:
    graph = build_graph(story([scene("a", "Hi.")], []))

    with pytest.raises(DataValidationError, match="MISSING_START_NODE"):
        ensure_valid_story_graph(graph)


def test_ensure_valid_raises_reference_error_listing_every_error() -> None:
    graph = build_graph(
        story(
            [start(), scene("a", "Hi.")],
            [flow("e1", "start", "a"), flow("e2", "a", "x"), flow("e3", "a", "y")],
        )
    )

    with pytest.raises(DataReferenceError) as excinfo:
        ensure_valid_story_graph(graph)
    assert "referenced_id=x" in str(excinfo.value)
    assert "referenced_id=y" in str(excinfo.value)


def test_ensure_valid_logs_warnings(caplog: pytest.LogCaptureFixture) -> None:
    graph = build_graph(story([start(), scene("a", "Hi.")], [flow("e1", "start", "a", condition="((")]))

    with caplog.at_level(logging.WARNING, logger="storyloom"):
        ensure_valid_story_graph(graph)

    assert any("INVALID_CONDITION" in record.getMessage() for record in caplog.records)
