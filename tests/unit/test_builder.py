import pytest

from specgraph.core.errors import EmptySpecification, GraphValidationError, MalformedStep
from specgraph.core.hasher import hash_spec
from specgraph.core.step_parser import ParsedStep
from specgraph.graph.builder import GraphBuilder, build_graph, render_steps
from specgraph.graph.model import EdgeType, GraphAuthorship, NodeType


def test_login_scenario_compiles_to_five_nodes(login_graph, login_steps):
    assert [n.type for n in login_graph.nodes] == [
        NodeType.NAVIGATE, NodeType.INPUT, NodeType.INPUT, NodeType.CLICK, NodeType.ASSERT_TEXT,
    ]
    assert [n.id for n in login_graph.nodes] == ["step_0", "step_1", "step_2", "step_3", "step_4"]
    assert [(e.source, e.target) for e in login_graph.edges] == [
        ("step_0", "step_1"), ("step_1", "step_2"), ("step_2", "step_3"), ("step_3", "step_4"),
    ]
    assert all(e.type == EdgeType.SEQUENTIAL for e in login_graph.edges)
    assert login_graph.spec_hash == hash_spec(render_steps(login_steps))
    login_graph.validate()


def test_nodes_keep_their_gherkin_reference(login_graph):
    node = login_graph.node("step_3")
    assert node.step.keyword == "When"
    assert node.step.text == "I click the submit button"


def test_empty_steps_raise():
    with pytest.raises(EmptySpecification):
        GraphBuilder().build([])


def test_malformed_step_aborts_the_build():
    steps = [
        ParsedStep("Given", "I am on the login page"),
        ParsedStep("When", 'I enter "oops into the email field'),
    ]
    with pytest.raises(MalformedStep) as exc:
        build_graph(steps)
    assert exc.value.step_index == 1


def test_id_is_stable_across_wording(login_steps):
    reworded = [
        ParsedStep("Given", "I navigate to the login page"),
        ParsedStep("When", "I type email as a@b.com"),
        ParsedStep("And", "I fill password with secret"),
        ParsedStep("When", "I press the submit button"),
        ParsedStep("Then", "I should see text Welcome back"),
    ]
    first = build_graph(login_steps)
    second = build_graph(reworded)
    assert first.id == second.id
    assert first.spec_hash != second.spec_hash


def test_id_ignores_metadata(login_steps):
    a = GraphBuilder().build(login_steps, created_at="2024-01-01T00:00:00+00:00", scenario_name="A")
    b = GraphBuilder().build(login_steps, authorship=GraphAuthorship.MACHINE,
                             created_at="2025-06-01T00:00:00+00:00", scenario_name="B", tags=["x"])
    assert a.id == b.id


@pytest.mark.parametrize("index, text", [
    (1, "I enter email as a@b.co"),
    (3, "I click the submit link"),
    (4, "I should see text Welcome Back"),
    (0, "I am on the signup page"),
])
def test_near_duplicates_get_different_ids(login_steps, index, text):
    changed = list(login_steps)
    changed[index] = ParsedStep(changed[index].keyword, text)
    assert build_graph(changed).id != build_graph(login_steps).id


def test_step_order_changes_id(login_steps):
    swapped = [login_steps[0], login_steps[2], login_steps[1]] + login_steps[3:]
    assert build_graph(swapped).id != build_graph(login_steps).id


def test_custom_step_is_flagged(login_steps):
    steps = login_steps[:1] + [ParsedStep("When", "I drag the slider to the right")]
    graph = build_graph(steps)
    assert [n.id for n in graph.review_nodes] == ["step_1"]
    assert graph.nodes[1].type == NodeType.CUSTOM


def test_metadata_is_recorded(login_steps):
    graph = GraphBuilder().build(
        login_steps,
        authorship=GraphAuthorship.MACHINE,
        scenario_name="Successful login",
        feature_name="Login",
        tags=["smoke", "smoke", "auth"],
        version_tag="v2",
    )
    assert graph.metadata.authorship == GraphAuthorship.MACHINE
    assert graph.metadata.tags == ("smoke", "auth")
    assert graph.metadata.version_tag == "v2"
    assert graph.metadata.created_at


def test_build_feature_shares_the_file_spec_hash(login_feature):
    text = login_feature + "\n  Scenario: Logout\n    Given I am on the dashboard page\n    When I click the Logout link\n"
    graphs = GraphBuilder().build_feature(text)
    assert [g.metadata.scenario_name for g in graphs] == ["Successful login", "Logout"]
    assert {g.spec_hash for g in graphs} == {hash_spec(text)}
    assert graphs[0].metadata.feature_name == "Login"


def test_build_feature_without_scenarios():
    with pytest.raises(EmptySpecification):
        GraphBuilder().build_feature("Feature: nothing here\n")


def test_validate_detects_tampered_id(login_graph):
    from dataclasses import replace

    with pytest.raises(GraphValidationError):
        replace(login_graph, id="0" * 64).validate()


def test_validate_detects_orphan_node(login_graph):
    from dataclasses import replace

    broken = replace(login_graph, edges=login_graph.edges[:-1])
    with pytest.raises(GraphValidationError):
        broken.validate(check_id=False)
