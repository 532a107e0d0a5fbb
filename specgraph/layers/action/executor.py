"""
Step Runtime - the handler context generated step definitions receive.

Generated code calls ``locate`` with a hint bundle and hands the result
to ``fill``, ``click`` or ``assert_text``. Every call site is wrapped in
``node(...)``, which records one ExecutionRecord per executed node and
re-raises whatever failed.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterator, Optional, Union, TYPE_CHECKING
import logging
import time

from selenium.common.exceptions import TimeoutException
from selenium.webdriver.support.ui import WebDriverWait

from specgraph.core.config import SpecGraphConfig
from specgraph.core.errors import AmbiguousMatch, SelectorResolutionError, StepAssertionError
from specgraph.layers.resolve.resolver import Resolution, SelectorResolver
from specgraph.layers.sense.dom_mapper import DocumentContext, SeleniumDocument
from specgraph.reporters.execution_recorder import ExecutionRecord, ExecutionRecorder

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver
    from selenium.webdriver.remote.webelement import WebElement

logger = logging.getLogger(__name__)

Target = Union[Resolution, str]


@dataclass
class NodeContext:
    """The node currently executing and what it resolved."""
    graph_id: str
    node_id: str
    step_text: str
    resolution: Optional[Resolution] = None


class StepRuntime:
    """
    Executes generated steps against a live browser.

    Example:
        >>> runtime = StepRuntime(driver, SpecGraphConfig.from_env())
        >>> with runtime.node(GRAPH_ID, "step_1", "I enter email as a@b.com"):
        ...     target = runtime.locate(text_hint="email", role_hint="textbox", type_hint="input")
        ...     runtime.fill(target, "a@b.com")
    """

    POLL_INTERVAL = 0.25

    def __init__(
        self,
        driver: "WebDriver",
        config: Optional[SpecGraphConfig] = None,
        resolver: Optional[SelectorResolver] = None,
        recorder: Optional[ExecutionRecorder] = None,
        document_factory: Callable[[Any], DocumentContext] = SeleniumDocument,
        stability_hook: Optional[Callable[[Any], None]] = None,
    ):
        """
        Args:
            driver: Selenium WebDriver the steps act through
            config: Base URL, page map and timeouts
            resolver: Resolver to use; built from ``config.strategy_order`` if omitted
            recorder: Optional ExecutionRecorder for the per-node trace
            document_factory: Builds a document context over the driver
            stability_hook: Called with the driver to wait for the page to
                settle. Defaults to the driver's own ``wait_for_stability``
                when it is waitless-wrapped, else a readyState poll.
        """
        self.driver = driver
        self.config = config or SpecGraphConfig()
        self.resolver = resolver or SelectorResolver(self.config.strategy_order)
        self.recorder = recorder
        self.document_factory = document_factory
        self.stability_hook = stability_hook or self._detect_stability_hook(driver)
        self.current: Optional[NodeContext] = None

    @contextmanager
    def node(self, graph_id: str, node_id: str, step_text: str) -> Iterator[NodeContext]:
        """Run one node and record its outcome."""
        context = NodeContext(graph_id, node_id, step_text)
        self.current = context
        started_at = datetime.now().isoformat(timespec="milliseconds")
        start_time = time.time()
        outcome, error, attempts = "success", None, []
        try:
            yield context
        except SelectorResolutionError as e:
            outcome, error = "resolution-failure", str(e)
            attempts = [a.to_dict() for a in e.attempts]
            if e.node_id is None:
                raise e.with_context(node_id, step_text) from e
            raise
        except AssertionError as e:
            outcome, error = "assertion-failure", str(e)
            raise
        except Exception as e:
            outcome, error = "error", f"{type(e).__name__}: {e}"
            raise
        finally:
            self.current = None
            if self.recorder is not None:
                self._record(context, outcome, error, attempts, started_at, start_time)

    def _record(self, context: NodeContext, outcome: str, error: Optional[str],
                attempts: list, started_at: str, start_time: float) -> None:
        resolution = context.resolution
        screenshot = None
        if outcome != "success":
            screenshot = self.recorder.capture_screenshot(self.driver, context.graph_id, context.node_id)
        self.recorder.record(ExecutionRecord(
            graph_id=context.graph_id,
            node_id=context.node_id,
            step_text=context.step_text,
            outcome=outcome,
            started_at=started_at,
            duration_ms=int((time.time() - start_time) * 1000),
            locator=resolution.locator if resolution else None,
            strategy=resolution.strategy if resolution else None,
            confidence=resolution.confidence.value if resolution else None,
            error=error,
            attempts=attempts or ([a.to_dict() for a in resolution.attempts] if resolution else []),
            screenshot_path=screenshot,
        ))

    # -- navigation ---------------------------------------------------------

    def navigate(self, url: Optional[str] = None, page: Optional[str] = None) -> None:
        if (url is None) == (page is None):
            raise ValueError("navigate() takes exactly one of url or page")
        target = self.config.page_url(page) if page is not None else self.config.url_for(url)
        logger.info(f"[StepRuntime] Navigating to {target}")
        self.driver.get(target)
        self._wait_for_stability()

    # -- resolution ---------------------------------------------------------

    def locate(
        self,
        explicit_selector: Optional[str] = None,
        text_hint: Optional[str] = None,
        role_hint: Optional[str] = None,
        type_hint: Optional[str] = None,
        structural_hint: Optional[str] = None,
    ) -> Resolution:
        """Resolve a hint bundle against the page as it is now."""
        self._wait_for_stability()
        context = self.current
        resolution = self.resolver.resolve(
            self.document_factory(self.driver),
            explicit_selector=explicit_selector,
            text_hint=text_hint,
            role_hint=role_hint,
            type_hint=type_hint,
            structural_hint=structural_hint,
            node_id=context.node_id if context else None,
            step_text=context.step_text if context else None,
        )
        if context is not None:
            context.resolution = resolution
        return resolution

    def wait_for(self, **hints) -> Resolution:
        """
        Resolve repeatedly until an element appears or the timeout passes.

        An ambiguous match is raised at once; waiting does not make it unique.
        """
        deadline = time.time() + self.config.timeout
        while True:
            try:
                return self.locate(**hints)
            except AmbiguousMatch:
                raise
            except SelectorResolutionError:
                if time.time() >= deadline:
                    raise
            time.sleep(self.POLL_INTERVAL)

    # -- interaction --------------------------------------------------------

    def fill(self, target: Target, value: str, clear_first: bool = True) -> None:
        element = self._element(target)
        self._scroll_into_view(element)
        if clear_first:
            element.clear()
        element.send_keys(value)
        self._wait_for_stability()

    def click(self, target: Target) -> None:
        element = self._element(target)
        self._scroll_into_view(element)
        element.click()
        self._wait_for_stability()

    def wait(self, seconds: float) -> None:
        time.sleep(seconds)

    # -- assertions ---------------------------------------------------------

    def assert_text(self, expected: str, target: Optional[Target] = None) -> None:
        """Wait until ``expected`` appears in the target's text (the page body by default)."""
        def current_text(driver) -> str:
            if target is not None:
                return self._element(target).text
            return driver.find_element("tag name", "body").text

        try:
            WebDriverWait(self.driver, self.config.timeout, poll_frequency=self.POLL_INTERVAL).until(
                lambda d: expected in current_text(d)
            )
        except TimeoutException:
            where = f"element {self._locator(target)!r}" if target is not None else "page"
            raise StepAssertionError(f"Expected text {expected!r} not found in {where}")

    def assert_url(self, expected: Optional[str] = None, page: Optional[str] = None) -> None:
        """
        Wait until the current URL matches.

        A literal ``expected`` must be contained in the URL; a ``page`` key
        must be a prefix of it once resolved against the base URL.
        """
        if (expected is None) == (page is None):
            raise ValueError("assert_url() takes exactly one of expected or page")
        wanted = self.config.page_url(page).rstrip("/") if page is not None else expected

        def matches(url: str) -> bool:
            if page is None:
                return wanted in url
            return url.rstrip("/") == wanted or url.startswith((wanted + "/", wanted + "?", wanted + "#"))

        try:
            WebDriverWait(self.driver, self.config.timeout, poll_frequency=self.POLL_INTERVAL).until(
                lambda d: matches(d.current_url)
            )
        except TimeoutException:
            raise StepAssertionError(f"Expected URL matching {wanted!r}, got {self.driver.current_url!r}")

    # -- driver helpers -----------------------------------------------------

    @staticmethod
    def _locator(target: Target) -> str:
        return target.locator if isinstance(target, Resolution) else target

    def _element(self, target: Target) -> "WebElement":
        return self.driver.find_element("css selector", self._locator(target))

    def _scroll_into_view(self, element: "WebElement") -> None:
        self.driver.execute_script("arguments[0].scrollIntoView({block: 'center'});", element)

    @staticmethod
    def _detect_stability_hook(driver) -> Optional[Callable[[Any], None]]:
        """Use waitless quiescence when the driver was wrapped with it."""
        if getattr(driver, "_waitless_wrapped", False) is not True:
            return None
        if callable(getattr(driver, "wait_for_stability", None)):
            logger.debug("[StepRuntime] Driver is waitless-wrapped, using its stability wait")
            return lambda d: d.wait_for_stability()
        # The wrapper stabilizes every command on its own.
        return lambda d: None

    def _wait_for_stability(self, timeout: Optional[float] = None) -> None:
        """Wait for the page to settle, through the stability hook if one is set."""
        if self.stability_hook is not None:
            self.stability_hook(self.driver)
            return
        try:
            WebDriverWait(self.driver, timeout or self.config.timeout).until(
                lambda d: d.execute_script("return document.readyState") == "complete"
            )
        except TimeoutException:
            logger.warning("[StepRuntime] Page did not reach readyState=complete before timeout")
