import pytest
from unittest.mock import MagicMock, call, patch

from specgraph.core.config import SpecGraphConfig
from specgraph.core.errors import AmbiguousMatch, SelectorResolutionError, StepAssertionError
from specgraph.layers.action.executor import StepRuntime
from specgraph.layers.sense.html_snapshot import HtmlDocument
from specgraph.reporters.execution_recorder import ExecutionRecorder

GRAPH_ID = "a" * 64


@pytest.fixture
def driver():
    mock_driver = MagicMock()
    mock_driver.execute_script.return_value = "complete"
    mock_driver.save_screenshot.return_value = False
    return mock_driver


@pytest.fixture
def config():
    return SpecGraphConfig(base_url="http://app.test", pages={"login": "/signin"}, timeout=0.3)


@pytest.fixture
def recorder(tmp_path):
    return ExecutionRecorder(str(tmp_path / "reports"), run_id="run1")


@pytest.fixture
def runtime(driver, config, recorder, login_html):
    return StepRuntime(driver, config, recorder=recorder, document_factory=lambda d: HtmlDocument(login_html))


def test_navigate_by_page_key(runtime, driver):
    runtime.navigate(page="login")
    driver.get.assert_called_once_with("http://app.test/signin")


def test_navigate_by_url(runtime, driver):
    runtime.navigate(url="/about")
    driver.get.assert_called_once_with("http://app.test/about")
    with pytest.raises(ValueError):
        runtime.navigate()


def test_locate_then_fill(runtime, driver):
    """fill() acts on the element the resolver picked, through its locator."""
    element = MagicMock()
    driver.find_element.return_value = element

    target = runtime.locate(text_hint="email", role_hint="textbox", type_hint="input")
    runtime.fill(target, "a@b.com")

    driver.find_element.assert_called_with("css selector", "#email")
    element.clear.assert_called_once()
    element.send_keys.assert_called_once_with("a@b.com")


def test_click_accepts_plain_locator(runtime, driver):
    runtime.click("#email")
    driver.find_element.return_value.click.assert_called_once()


def test_assert_text_on_page(runtime, driver):
    driver.find_element.return_value.text = "Welcome back, Ada"
    runtime.assert_text("Welcome back")
    driver.find_element.assert_called_with("tag name", "body")


def test_assert_text_failure(runtime, driver):
    driver.find_element.return_value.text = "Invalid password"
    with pytest.raises(StepAssertionError) as exc:
        runtime.assert_text("Welcome back")
    assert isinstance(exc.value, AssertionError)


@pytest.mark.parametrize("url", [
    "http://app.test/signin",
    "http://app.test/signin/",
    "http://app.test/signin?next=%2F",
])
def test_assert_url_by_page(runtime, driver, url):
    driver.current_url = url
    runtime.assert_url(page="login")


def test_assert_url_page_prefix_is_not_substring(runtime, driver):
    driver.current_url = "http://app.test/signin-help"
    with pytest.raises(StepAssertionError):
        runtime.assert_url(page="login")


def test_assert_url_literal(runtime, driver):
    driver.current_url = "http://app.test/dashboard?tab=1"
    runtime.assert_url("/dashboard")
    with pytest.raises(StepAssertionError):
        runtime.assert_url("/settings")


def test_successful_node_is_recorded(runtime, recorder, driver):
    driver.find_element.return_value = MagicMock()
    with runtime.node(GRAPH_ID, "step_1", "I enter email as a@b.com"):
        runtime.fill(runtime.locate(text_hint="email"), "a@b.com")

    [record] = recorder.load_run(GRAPH_ID)
    assert record.outcome == "success"
    assert record.locator == "#email"
    assert record.strategy == "text"
    assert record.confidence == "medium"
    assert record.screenshot_path is None


def test_resolution_failure_is_recorded_with_node(runtime, recorder):
    with pytest.raises(SelectorResolutionError) as exc:
        with runtime.node(GRAPH_ID, "step_3", "I click the Delete button"):
            runtime.locate(text_hint="Delete", role_hint="button")

    assert exc.value.node_id == "step_3"
    assert exc.value.step_text == "I click the Delete button"
    [record] = recorder.load_run(GRAPH_ID)
    assert record.outcome == "resolution-failure"
    assert [a["strategy"] for a in record.attempts] == ["explicit", "role_text", "text", "type"]


def test_errors_raised_outside_locate_gain_node_context(runtime):
    error = SelectorResolutionError([], {"text_hint": "x"})
    with pytest.raises(SelectorResolutionError) as exc:
        with runtime.node(GRAPH_ID, "step_2", "I click x"):
            raise error
    assert exc.value.node_id == "step_2"
    assert exc.value.__cause__ is error


def test_assertion_failure_is_recorded(runtime, recorder, driver):
    driver.find_element.return_value.text = "Nope"
    with pytest.raises(StepAssertionError):
        with runtime.node(GRAPH_ID, "step_4", "I should see text Welcome back"):
            runtime.assert_text("Welcome back")
    assert recorder.load_run(GRAPH_ID)[0].outcome == "assertion-failure"


def test_unexpected_error_is_recorded(runtime, recorder, driver):
    driver.save_screenshot.return_value = True
    with pytest.raises(NotImplementedError):
        with runtime.node(GRAPH_ID, "step_5", "I drag the slider"):
            raise NotImplementedError("Step needs a manual binding")

    [record] = recorder.load_run(GRAPH_ID)
    assert record.outcome == "error"
    assert record.error == "NotImplementedError: Step needs a manual binding"
    assert record.screenshot_path.endswith("step_5.png")
    assert runtime.current is None


def test_wait_for_retries_until_element_appears(driver, config, login_html):
    documents = iter([HtmlDocument("<body></body>"), HtmlDocument(login_html)])
    runtime = StepRuntime(driver, config, document_factory=lambda d: next(documents))
    with patch("specgraph.layers.action.executor.time.sleep") as sleep:
        resolution = runtime.wait_for(text_hint="email")
    assert resolution.locator == "#email"
    sleep.assert_called_once_with(StepRuntime.POLL_INTERVAL)


def test_wait_for_fails_fast_on_ambiguity(driver, config):
    document = HtmlDocument("<body><button>Save</button><button>Save</button></body>")
    runtime = StepRuntime(driver, config, document_factory=lambda d: document)
    with patch("specgraph.layers.action.executor.time.sleep") as sleep:
        with pytest.raises(AmbiguousMatch):
            runtime.wait_for(text_hint="Save")
    sleep.assert_not_called()


def test_stability_hook_replaces_ready_state_poll(driver, config, login_html):
    hook = MagicMock()
    runtime = StepRuntime(driver, config, document_factory=lambda d: HtmlDocument(login_html),
                          stability_hook=hook)
    runtime.navigate(page="login")
    runtime.click("#email")
    assert hook.call_args_list == [call(driver), call(driver)]
    assert call("return document.readyState") not in driver.execute_script.call_args_list


def test_waitless_wrapped_driver_uses_its_stability_wait(driver, config):
    driver._waitless_wrapped = True
    runtime = StepRuntime(driver, config)
    runtime.navigate(url="/about")
    driver.wait_for_stability.assert_called_once_with()
    assert call("return document.readyState") not in driver.execute_script.call_args_list


def test_plain_driver_polls_ready_state(driver, config):
    runtime = StepRuntime(driver, config)
    assert runtime.stability_hook is None
    runtime.navigate(url="/about")
    driver.execute_script.assert_any_call("return document.readyState")
