"""Tests for workflow models and execution records."""
import json

import pytest
from pydantic import ValidationError

from flow_orchestrator.models import (
    ErrorPolicy,
    ExecutionOptions,
    ExecutionStatus,
    NodeResult,
    RetryScope,
    WorkflowNode,
    load_workflow,
    parse_workflow,
)


class TestWorkflowNode:
    """Test n8n node parsing."""

    def test_n8n_export_fields(self):
        node = WorkflowNode.model_validate({
            "id": "a1",
            "name": "Fetch",
            "type": "n8n-nodes-base.httpRequest",
            "typeVersion": 4.2,
            "position": [250, 300],
            "retryOnFail": True,
            "maxTries": 5,
            "waitBetweenTries": 200,
        })

        assert node.type_version == 4.2
        assert (node.position.x, node.position.y) == (250, 300)
        assert node.retry_on_fail is True
        assert node.max_tries == 5
        assert node.wait_between_tries == 200
        assert node.error_policy is None

    @pytest.mark.parametrize("on_error, expected", [
        ("stopWorkflow", ErrorPolicy.STOP),
        ("continueRegularOutput", ErrorPolicy.CONTINUE),
        ("continueErrorOutput", ErrorPolicy.CONTINUE),
        ("stop", ErrorPolicy.STOP),
    ])
    def test_on_error_values(self, on_error, expected):
        node = WorkflowNode.model_validate({"id": "a", "name": "a", "type": "t", "onError": on_error})

        assert node.error_policy == expected

    def test_unknown_on_error_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowNode.model_validate({"id": "a", "name": "a", "type": "t", "onError": "explode"})

    def test_node_is_frozen(self):
        node = WorkflowNode(id="a", name="a", type="t")

        with pytest.raises(ValidationError):
            node.name = "b"

    def test_extra_fields_kept(self):
        node = WorkflowNode.model_validate({"id": "a", "name": "a", "type": "t", "executeOnce": True})

        assert node.model_extra == {"executeOnce": True}


class TestWorkflowDefinition:
    """Test workflow parsing and graph helpers."""

    def test_connection_helpers(self, workflow_factory):
        workflow = parse_workflow(workflow_factory(["A", "B", "C"], [("A", "B"), ("A", "C")]))

        assert workflow.node_ids == ["A", "B", "C"]
        assert [n.id for n in workflow.get_start_nodes()] == ["A"]
        assert workflow.get_downstream("A") == ["B", "C"]
        assert workflow.get_upstream("C") == ["A"]
        assert workflow.get_node("missing") is None

    def test_flat_connection_list_is_one_branch(self):
        workflow = parse_workflow({
            "nodes": [{"id": "A", "name": "A", "type": "t"}, {"id": "B", "name": "B", "type": "t"}],
            "connections": {"A": {"main": [{"node": "B", "type": "main", "index": 0}]}},
        })

        connections = list(workflow.iter_connections())

        assert [(c.source, c.target, c.index) for c in connections] == [("A", "B", 0)]

    def test_load_json_and_yaml(self, tmp_path, workflow_factory):
        data = workflow_factory(["A", "B"], [("A", "B")])
        json_path = tmp_path / "wf.json"
        json_path.write_text(json.dumps(data))
        yaml_path = tmp_path / "wf.yml"
        yaml_path.write_text(
            "id: wf-test\n"
            "nodes:\n"
            "  - {id: A, name: A, type: test.echo}\n"
            "  - {id: B, name: B, type: test.echo}\n"
            "connections:\n"
            "  A: {main: [[{node: B, type: main, index: 0}]]}\n"
        )

        from_json = load_workflow(json_path)
        from_yaml = load_workflow(yaml_path)

        assert from_json.node_ids == from_yaml.node_ids == ["A", "B"]
        assert list(from_json.iter_connections()) == list(from_yaml.iter_connections())


class TestExecutionRecords:
    """Test options and execution records."""

    def test_options_aliases(self):
        options = ExecutionOptions.model_validate({
            "timeout": 5,
            "retryOnFailure": False,
            "continueOnFail": True,
            "maxTries": 2,
            "retryDelay": 0.5,
            "retryScope": "node",
        })

        assert options.retry_on_failure is False
        assert options.continue_on_fail is True
        assert options.max_tries == 2
        assert options.retry_scope == RetryScope.NODE

    def test_options_reject_non_positive_timeout(self):
        with pytest.raises(ValidationError):
            ExecutionOptions(timeout=0)

    def test_execution_id_format(self, workflow_factory, make_execution):
        first = make_execution(workflow_factory(["A"]))
        second = make_execution(workflow_factory(["A"]))

        assert first.id.startswith("exec_")
        assert first.id != second.id
        assert first.status == ExecutionStatus.PENDING
        assert first.attempts == 1

    def test_output_items_from_terminal_nodes(self, workflow_factory, make_execution):
        execution = make_execution(workflow_factory(["A", "B", "C"], [("A", "B"), ("A", "C")]))
        for node_id in ("A", "B", "C"):
            execution.results[node_id] = NodeResult(
                node_id=node_id, node_name=node_id, success=True, items=[{"json": {"from": node_id}}]
            )
        execution.results["C"].success = False

        assert execution.output_items() == [{"json": {"from": "B"}}]

    def test_to_dict(self, workflow_factory, make_execution):
        execution = make_execution(workflow_factory(["A"]))
        execution.results["A"] = NodeResult(node_id="A", node_name="A", success=True, duration_ms=1.23456)

        data = execution.to_dict()

        assert data["workflowId"] == "wf-test"
        assert data["status"] == "pending"
        assert data["plan"] == ["A"]
        assert data["results"]["A"]["durationMs"] == 1.235
        assert data["startedAt"] is None
        json.dumps(data)

    def test_wait_and_mark_done(self, workflow_factory, make_execution):
        execution = make_execution(workflow_factory(["A"]))

        assert execution.wait(0.01) is False
        execution.mark_done()
        assert execution.wait(0) is True
        assert execution.is_terminal
