"""
定位诊断变量：控制循环写、UI/遥测读的“最新值”字典。
仅用于观察，估计流程从不读取这里的内容。
"""
import threading
from typing import Any, Dict

debug_vars: Dict[str, Any] = {}
debug_vars_lock = threading.Lock()


def reset_debug_vars() -> None:
    with debug_vars_lock:
        debug_vars.clear()


def set_debug_var(key: str, value: Any) -> None:
    with debug_vars_lock:
        debug_vars[key] = value


def set_debug_vars(prefix: str, values: Dict[str, Any]) -> None:
    """批量写入同一前缀下的多个变量（一次加锁，读者看不到半更新的一组值）"""
    with debug_vars_lock:
        for k, v in values.items():
            debug_vars[f"{prefix}/{k}"] = v


def get_debug_var(key: str, default: Any = None) -> Any:
    with debug_vars_lock:
        return debug_vars.get(key, default)


def get_debug_vars() -> Dict[str, Any]:
    with debug_vars_lock:
        return dict(debug_vars)
