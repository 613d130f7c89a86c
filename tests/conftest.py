import os

# 测试时不落盘日志文件（必须在导入 core.logger 之前设置）
os.environ.setdefault("SWERVE_LOC_NO_LOGFILE", "1")

import pytest

from core.debug_vars import reset_debug_vars


@pytest.fixture(autouse=True)
def _clean_debug_vars():
    reset_debug_vars()
    yield
    reset_debug_vars()
