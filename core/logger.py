import logging
import os
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional

from nicegui import ui

from core.paths import LOG_DIR

CONSOLE_LOG_LEVEL = logging.INFO
FILE_LOG_LEVEL = logging.WARNING
UI_LOG_LEVEL = logging.WARNING

# 环境变量存在时不写日志文件（单元测试、只读文件系统）
NO_LOGFILE_ENV = 'SWERVE_LOC_NO_LOGFILE'

_FMT = logging.Formatter('%(asctime)s [%(levelname)s] %(threadName)s: %(message)s')
_UI_FMT = logging.Formatter('%(message)s')


class UiHandler(logging.Handler):
    """
    定位告警推送到 NiceGUI notify。
    只在挂载了容器（set_ui_target）时弹窗：控制循环、采样线程都不在 UI 上下文里，
    必须 `with container:` 才能安全创建通知。
    """
    _NOTIFY_TYPES = ((logging.ERROR, 'negative'), (logging.WARNING, 'warning'), (logging.INFO, 'info'))

    def __init__(self, container_getter: Callable[[], Optional[ui.element]]):
        super().__init__()
        self._container_getter = container_getter
        self.setFormatter(_UI_FMT)

    def emit(self, record: logging.LogRecord) -> None:
        container = self._container_getter()
        if container is None:
            return
        notify_type = next((t for lv, t in self._NOTIFY_TYPES if record.levelno >= lv), 'positive')
        try:
            with container:
                ui.notify(self.format(record), type=notify_type)
        except Exception:
            # 页面已关闭等 UI 异常不影响控制台/文件输出
            self.handleError(record)


class Logger:
    """
    定位系统日志：控制台 + 按需创建的文件 + NiceGUI 弹窗。
    消息统一以 `[模块名]` 开头；高频路径（控制循环里每周期都可能触发的告警）用 warning_throttled。
    """

    def __init__(self, name: str = 'swerve_loc',
                 console_level: int = logging.INFO,
                 file_level: int = logging.WARNING,
                 ui_level: int = logging.WARNING,
                 logfile: Optional[str] = None):
        self._logger = logging.getLogger(name)
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        self._ui_container: Optional[ui.element] = None
        self._install_console(console_level)
        self._install_ui(ui_level)

        self._file_level = file_level
        self._logfile_path = logfile
        self._file_handler: Optional[logging.FileHandler] = None
        self._file_enabled = os.environ.get(NO_LOGFILE_ENV) is None

        self._throttle_lock = threading.Lock()
        self._last_emit: Dict[str, float] = {}

    # ---------- handler 安装（重复导入时只装一次） ----------
    def _install_console(self, level: int) -> None:
        if any(type(h) is logging.StreamHandler for h in self._logger.handlers):
            return
        ch = logging.StreamHandler()
        ch.setLevel(level)
        ch.setFormatter(_FMT)
        self._logger.addHandler(ch)

    def _install_ui(self, level: int) -> None:
        if any(isinstance(h, UiHandler) for h in self._logger.handlers):
            return
        uh = UiHandler(container_getter=lambda: self._ui_container)
        uh.setLevel(level)
        self._logger.addHandler(uh)

    def set_ui_target(self, container: Optional[ui.element]) -> None:
        """指定弹窗所在的 NiceGUI 容器；传 None 关闭弹窗"""
        self._ui_container = container

    def set_console_level(self, level: int) -> None:
        for h in self._logger.handlers:
            if type(h) is logging.StreamHandler:
                h.setLevel(level)

    # ---------- 文件日志 ----------
    def _ensure_file_handler(self) -> None:
        if self._file_handler or not self._file_enabled:
            return
        if not self._logfile_path:
            ts = datetime.now().strftime('%Y%m%d_%H%M%S')
            self._logfile_path = os.path.join(LOG_DIR, f'localization_{ts}.log')
        try:
            os.makedirs(os.path.dirname(self._logfile_path), exist_ok=True)
            fh = logging.FileHandler(self._logfile_path, encoding='utf-8')
        except OSError as e:
            self._file_enabled = False
            self._logger.error(f'[Logger] 无法创建日志文件 {self._logfile_path}: {e}')
            return
        fh.setLevel(self._file_level)
        fh.setFormatter(_FMT)
        self._logger.addHandler(fh)
        self._file_handler = fh

    def enable_file(self, logfile: Optional[str] = None) -> None:
        if logfile:
            self._logfile_path = logfile
        self._file_enabled = True
        self._ensure_file_handler()

    @property
    def raw(self) -> logging.Logger:
        """底层 logging.Logger（pytest caplog 等工具需要）"""
        return self._logger

    # ---------- 记录入口 ----------
    def _log(self, level: int, msg, *args, **kwargs) -> None:
        if level >= self._file_level and self._file_handler is None:
            self._ensure_file_handler()
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):   self._log(logging.DEBUG, msg, *args, **kwargs)
    def info(self, msg, *args, **kwargs):    self._log(logging.INFO, msg, *args, **kwargs)
    def warning(self, msg, *args, **kwargs): self._log(logging.WARNING, msg, *args, **kwargs)
    def error(self, msg, *args, **kwargs):   self._log(logging.ERROR, msg, *args, **kwargs)

    def warning_throttled(self, key: str, msg, period_s: float = 1.0) -> bool:
        """同一 key 在 period_s 内只记录一次 warning；返回本次是否真正输出"""
        now = time.monotonic()
        with self._throttle_lock:
            last = self._last_emit.get(key)
            if last is not None and now - last < period_s:
                return False
            self._last_emit[key] = now
        self._log(logging.WARNING, msg)
        return True


# 单例
logger = Logger(
    console_level=CONSOLE_LOG_LEVEL,
    file_level=FILE_LOG_LEVEL,
    ui_level=UI_LOG_LEVEL,
)
