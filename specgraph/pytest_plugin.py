"""
pytest plugin providing the fixtures generated step modules depend on.

Registered through the ``pytest11`` entry point, so installing the
package is enough for ``specgraph_runtime`` to be available.
"""

from typing import Iterator

import pytest

from specgraph.core.config import SpecGraphConfig
from specgraph.core.driver_factory import create_driver
from specgraph.layers.action.executor import StepRuntime
from specgraph.reporters.execution_recorder import ExecutionRecorder


def pytest_addoption(parser):
    group = parser.getgroup("specgraph")
    group.addoption("--specgraph-base-url", default=None, help="Base URL page keys resolve against")
    group.addoption("--specgraph-headed", action="store_true", default=False, help="Show the browser")


@pytest.fixture(scope="session")
def specgraph_config(pytestconfig) -> SpecGraphConfig:
    config = SpecGraphConfig.from_env(base_url=pytestconfig.getoption("specgraph_base_url"))
    if pytestconfig.getoption("specgraph_headed"):
        config.headless = False
    return config


@pytest.fixture(scope="session")
def specgraph_recorder(specgraph_config) -> ExecutionRecorder:
    return ExecutionRecorder(specgraph_config.report_dir)


@pytest.fixture
def specgraph_driver(specgraph_config) -> Iterator:
    driver = create_driver(headless=specgraph_config.headless, page_load_timeout=specgraph_config.timeout * 3)
    yield driver
    driver.quit()


@pytest.fixture
def specgraph_runtime(specgraph_driver, specgraph_config, specgraph_recorder) -> StepRuntime:
    return StepRuntime(specgraph_driver, specgraph_config, recorder=specgraph_recorder)
