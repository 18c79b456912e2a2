# tests/conftest.py
import logging

import pytest
import structlog

from jpktool.default_configs import restore_default_configs
from jpktool.mapping import map_to_jpk_v7m
from helpers import make_entry, make_purchase, make_request


@pytest.fixture(autouse=True)
def quiet_structlog():
    """Keep log output out of test reports; CLI tests reconfigure it anyway."""
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL))
    yield
    structlog.reset_defaults()


@pytest.fixture
def simple_request():
    # 1000 net / 230 VAT sale and a 400 net / 92 VAT purchase
    return make_request([make_entry(), make_purchase()])


@pytest.fixture
def simple_document(simple_request):
    return map_to_jpk_v7m(simple_request)


@pytest.fixture
def config_dir(tmp_path):
    restore_default_configs(str(tmp_path))
    return tmp_path / "configs"
