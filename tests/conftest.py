import logging

import pytest


@pytest.fixture(autouse=True)
def _enable_logging_for_adf_tests(request):
    """Undo the module-level logging.disable() of other test modules for assertLogs-based ADF tests."""
    if request.node.path.name != "test_adf.py":
        yield
        return
    previous = logging.root.manager.disable
    logging.disable(logging.NOTSET)
    yield
    logging.disable(previous)
