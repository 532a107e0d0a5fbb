import pytest

from specgraph.core.step_parser import ParsedStep
from specgraph.graph.builder import GraphBuilder

LOGIN_STEPS = [
    ParsedStep("Given", "I am on the login page"),
    ParsedStep("When", "I enter email as a@b.com"),
    ParsedStep("When", "I enter password as secret"),
    ParsedStep("When", "I click the submit button"),
    ParsedStep("Then", "I should see text Welcome back"),
]

LOGIN_FEATURE = """\
Feature: Login

  Scenario: Successful login
    Given I am on the login page
    When I enter email as a@b.com
    And I enter password as secret
    When I click the submit button
    Then I should see text Welcome back
"""

LOGIN_HTML = """\
<html>
<head><title>Sign in</title><script>var x = "<button>Submit</button>";</script></head>
<body>
  <h1>Sign in</h1>
  <form>
    <label for="email">Email</label>
    <input id="email" name="email" type="email">
    <label>Password <input name="password" type="password"></label>
    <input type="hidden" name="csrf" value="token">
    <button type="submit">Submit</button>
  </form>
  <a href="/forgot">Forgot password?</a>
</body>
</html>
"""


@pytest.fixture
def login_steps():
    return list(LOGIN_STEPS)


@pytest.fixture
def login_graph():
    return GraphBuilder().build(
        LOGIN_STEPS,
        scenario_name="Successful login",
        created_at="2024-01-01T00:00:00+00:00",
    )


@pytest.fixture
def login_html():
    return LOGIN_HTML


@pytest.fixture
def login_feature():
    return LOGIN_FEATURE
