"""
Configuration for compilation, code generation and test runs.

Values come from dataclass defaults, then SPECGRAPH_* environment
variables, then explicit CLI options, each overriding the one before.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional, Tuple
import logging

from specgraph.layers.resolve.strategies import DEFAULT_STRATEGY_ORDER, STRATEGIES

logger = logging.getLogger(__name__)

_TRUE = ("1", "true", "yes", "on")


def parse_pages(value: str) -> Dict[str, str]:
    """Parse ``login=/login,dashboard=/home`` into a page map."""
    pages: Dict[str, str] = {}
    for item in value.split(","):
        if "=" not in item:
            continue
        key, route = (s.strip() for s in item.split("=", 1))
        if key and route:
            pages[key] = route
    return pages


def parse_strategy_order(value: str) -> Tuple[str, ...]:
    names = [s.strip() for s in value.split(",") if s.strip()]
    known = tuple(n for n in names if n in STRATEGIES)
    dropped = [n for n in names if n not in STRATEGIES]
    if dropped:
        logger.warning(f"[SpecGraphConfig] Ignoring unknown strategies: {', '.join(dropped)}")
    return known or DEFAULT_STRATEGY_ORDER


@dataclass
class SpecGraphConfig:
    """Settings shared by the CLI, the generator and the pytest plugin."""
    store_dir: str = "./specgraph_store"
    generated_dir: str = "./tests/steps/generated"
    report_dir: str = "./specgraph_reports"
    base_url: str = "http://localhost"
    pages: Dict[str, str] = field(default_factory=dict)  # page key -> route
    strategy_order: Tuple[str, ...] = DEFAULT_STRATEGY_ORDER
    headless: bool = True
    timeout: int = 10  # seconds for waits and stability checks

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "SpecGraphConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("SPECGRAPH_STORE_DIR"):
            config.store_dir = env["SPECGRAPH_STORE_DIR"]
        if env.get("SPECGRAPH_GENERATED_DIR"):
            config.generated_dir = env["SPECGRAPH_GENERATED_DIR"]
        if env.get("SPECGRAPH_REPORT_DIR"):
            config.report_dir = env["SPECGRAPH_REPORT_DIR"]
        base_url = env.get("SPECGRAPH_BASE_URL") or env.get("E2E_BASE_URL")
        if base_url:
            config.base_url = base_url
        if env.get("SPECGRAPH_PAGES"):
            config.pages = parse_pages(env["SPECGRAPH_PAGES"])
        if env.get("SPECGRAPH_STRATEGY_ORDER"):
            config.strategy_order = parse_strategy_order(env["SPECGRAPH_STRATEGY_ORDER"])
        if env.get("SPECGRAPH_HEADLESS"):
            config.headless = env["SPECGRAPH_HEADLESS"].strip().lower() in _TRUE
        if env.get("SPECGRAPH_TIMEOUT"):
            config.timeout = int(env["SPECGRAPH_TIMEOUT"])
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return replace(config, **overrides) if overrides else config

    def url_for(self, route: str) -> str:
        """Join a route onto the base URL; absolute URLs pass through."""
        if route.startswith(("http://", "https://")):
            return route
        return self.base_url.rstrip("/") + "/" + route.lstrip("/")

    def page_url(self, key: str) -> str:
        """Absolute URL of a named page. Unmapped keys resolve to ``/<key>``."""
        return self.url_for(self.pages.get(key, f"/{key}"))
