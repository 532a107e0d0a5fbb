import ast
import os

import pytest

from specgraph.core.errors import MalformedStep
from specgraph.core import step_parser
from specgraph.core.step_parser import (
    ParsedStep,
    RegexStepParser,
    StepClassifier,
    extract_step_intent,
    read_feature,
    slugify,
)
from specgraph.graph.model import DeterministicInstructions, NodeType, RuntimeReference


def parse(text, keyword="When"):
    return RegexStepParser().parse(ParsedStep(keyword, text), 0)


@pytest.mark.parametrize("text, expected", [
    ("I am on the login page", NodeType.NAVIGATE),
    ("I navigate to the dashboard page", NodeType.NAVIGATE),
    ("I enter email as a@b.com", NodeType.INPUT),
    ("I type 'bob' into the username field", NodeType.INPUT),
    ("I click the submit button", NodeType.CLICK),
    ("I should see text Welcome back", NodeType.ASSERT_TEXT),
    ("I should see the submit button", NodeType.ASSERT_TEXT),
    ("I should be on the dashboard page", NodeType.ASSERT_URL),
    ("the url should contain '/home'", NodeType.ASSERT_URL),
    ("I wait 2 seconds", NodeType.WAIT),
    ("I drag the slider to the right", NodeType.CUSTOM),
    ("I click the See details link", NodeType.CLICK),
    ("I click the Open button", NodeType.CLICK),
    ("I click the Go back link", NodeType.CLICK),
    ("I press the Visit store button", NodeType.CLICK),
    ("the user clicks the Wait list tab", NodeType.CLICK),
    ("the user sees the Welcome heading", NodeType.ASSERT_TEXT),
    ("we open the settings page", NodeType.NAVIGATE),
])
def test_classifier_rules(text, expected):
    assert StepClassifier().classify(text) == expected


def test_navigate_to_named_page_is_runtime_reference():
    intent = parse("I am on the login page", keyword="Given")
    assert intent.node_type == NodeType.NAVIGATE
    assert intent.instructions == RuntimeReference(action="navigate", ref_kind="page", key="login")


def test_navigate_to_literal_url_is_deterministic():
    intent = parse('I open "https://example.com/login"', keyword="Given")
    assert isinstance(intent.instructions, DeterministicInstructions)
    assert intent.instructions.url == "https://example.com/login"


def test_input_with_as_value():
    intent = parse("I enter email as a@b.com")
    assert intent.node_type == NodeType.INPUT
    assert intent.instructions.value == "a@b.com"
    assert intent.selector_ref.text_hint == "email"
    assert intent.selector_ref.role_hint == "textbox"
    assert intent.selector_ref.type_hint == "input"


def test_input_with_quoted_value_into_field():
    intent = parse('I enter "secret" into the password field')
    assert intent.instructions.value == "secret"
    assert intent.selector_ref.text_hint == "password"
    assert intent.selector_ref.type_hint == "input"


def test_placeholder_value_becomes_env_reference():
    intent = parse('I fill in "#email" with "<USER_EMAIL>"')
    assert intent.instructions.env_var == "USER_EMAIL"
    assert intent.instructions.value == "<USER_EMAIL>"
    # A CSS-looking target is an explicit selector, so no hint bundle is needed.
    assert intent.instructions.selector == "#email"
    assert intent.selector_ref is None


def test_click_with_css_literal_is_fully_resolved():
    intent = parse('I click "[data-testid=login]"')
    assert intent.instructions.selector == "[data-testid=login]"
    assert intent.instructions.is_fully_resolved


def test_click_builds_hint_bundle():
    intent = parse("I click the submit button")
    ref = intent.selector_ref
    assert (ref.text_hint, ref.role_hint, ref.type_hint) == ("submit", "button", "button")
    assert ref.structural_hint is None


def test_ordinal_becomes_structural_hint():
    intent = parse("I click the second Delete button")
    assert intent.selector_ref.text_hint == "Delete"
    assert intent.selector_ref.structural_hint == "nth=2"


def test_assert_text_without_target_has_no_hints():
    intent = parse("I should see text Welcome back", keyword="Then")
    assert intent.instructions.value == "Welcome back"
    assert intent.selector_ref is None


def test_assert_text_on_heading():
    intent = parse("I should see the Welcome heading", keyword="Then")
    assert intent.instructions.value == "Welcome"
    assert intent.selector_ref.role_hint == "heading"


def test_assert_url_forms():
    assert parse('I should be redirected to "/dashboard"', "Then").instructions.value == "/dashboard"
    page = parse("I should be on the dashboard page", "Then").instructions
    assert page == RuntimeReference(action="assert-url", ref_kind="page", key="dashboard")


def test_wait_for_duration_and_element():
    assert parse("I wait 2 seconds").instructions.seconds == 2.0
    assert parse("I wait 500 ms").instructions.seconds == 0.5
    intent = parse("I wait for the Dashboard heading to appear")
    assert intent.node_type == NodeType.WAIT
    assert intent.selector_ref.text_hint == "Dashboard"
    assert intent.instructions.action == "wait-for"


def test_unknown_step_falls_back_to_custom_flagged_for_review():
    intent = parse("I drag the slider to the right")
    assert intent.node_type == NodeType.CUSTOM
    assert intent.needs_review is True
    assert intent.instructions.ref_kind == "manual"


def test_waiting_for_absence_needs_review():
    intent = parse("I wait for the spinner to disappear")
    assert intent.node_type == NodeType.CUSTOM
    assert intent.needs_review is True


@pytest.mark.parametrize("text, reason", [
    ('I enter "abc into the name field', "unterminated"),
    ('I enter "" into the name field', "empty"),
    ("I enter the email field", "explicit value"),
    ("I enter email as <not a placeholder>", "placeholder"),
    ("I click on", "no target"),
    ("I click '#save['", "invalid CSS selector"),
    ('I fill in ".name[" with "Ada"', "invalid CSS selector"),
])
def test_malformed_steps(text, reason):
    with pytest.raises(MalformedStep) as exc:
        RegexStepParser().parse(ParsedStep("When", text), 3)
    assert exc.value.step_index == 3
    assert exc.value.step_text == text
    assert reason in exc.value.reason


def test_extract_step_intent_uses_default_rules():
    assert extract_step_intent(ParsedStep("When", "I click the Login link")).selector_ref.role_hint == "link"


def test_slugify():
    assert slugify("Successful Login!") == "successful-login"


def test_read_feature_with_background_and_tags():
    text = """
@smoke
Feature: Login
  As a user I want to sign in

  Background:
    Given I am on the login page

  # happy path
  @happy
  Scenario: Successful login
    When I enter email as a@b.com
    Then I should see text Welcome

  Scenario: Bad password
    When I enter password as wrong
    But I should see text Invalid
"""
    scenarios = read_feature(text)
    assert [s.name for s in scenarios] == ["Successful login", "Bad password"]
    assert scenarios[0].tags == ["happy"]
    assert scenarios[0].feature_name == "Login"
    assert [s.text for s in scenarios[0].steps] == [
        "I am on the login page",
        "I enter email as a@b.com",
        "I should see text Welcome",
    ]
    assert scenarios[1].steps[-1].keyword == "But"


def test_read_feature_rejects_tables():
    text = "Feature: x\n  Scenario: Broken\n    Given I am on the login page\n    | a | b |\n"
    with pytest.raises(MalformedStep):
        read_feature(text)


@pytest.mark.parametrize("text, label", [
    ("I click the Open button", "Open"),
    ("I click the See details link", "See details"),
    ("I press the Visit store button", "Visit store"),
])
def test_target_words_that_look_like_verbs_stay_in_the_label(text, label):
    intent = parse(text)
    assert intent.node_type == NodeType.CLICK
    assert intent.selector_ref.text_hint == label


def test_submit_verb_after_subject_targets_submit_controls():
    ref = parse("the user submits the form").selector_ref
    assert (ref.role_hint, ref.type_hint) == ("button", "submit")


def test_valid_css_literal_is_kept():
    intent = parse("I click 'css=#save'")
    assert intent.instructions.selector == "#save"


def test_source_modules_open_with_a_docstring():
    root = os.path.dirname(step_parser.__file__)
    package = os.path.dirname(root)
    for dirpath, _, filenames in os.walk(package):
        for filename in filenames:
            if not filename.endswith(".py") or filename == "__init__.py":
                continue
            path = os.path.join(dirpath, filename)
            with open(path, encoding="utf-8") as f:
                assert ast.get_docstring(ast.parse(f.read())), path
