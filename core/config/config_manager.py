import json
import os
import tempfile
from dataclasses import asdict, fields, is_dataclass, MISSING
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union, get_args, get_origin

import numpy as np

from core.logger import logger

T = TypeVar('T')


# ---------- 写出 ----------
def _to_jsonable(obj: Any) -> Any:
    """dataclass / numpy / int 键字典 -> 纯 JSON 结构"""
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: _to_jsonable(v) for k, v in asdict(obj).items()}
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    if isinstance(obj, dict):
        # JSON 的键只能是字符串（Tag 布局以 tag_id 为键）
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    return obj


def save_config(config_file: str, config: Union[T, Sequence[T]]) -> bool:
    """原子写入：先写同目录临时文件再 os.replace，读方永远看不到半个文件。"""
    target_dir = os.path.dirname(os.path.abspath(config_file))
    try:
        data = _to_jsonable(config)
        os.makedirs(target_dir, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=target_dir, prefix='.cfg.', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, config_file)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f'[Config] 保存 {config_file} 失败: {e}')
        return False
    logger.info(f'[Config] 已保存 {config_file}')
    return True


# ---------- 读入：按注解逐层校验并转换 ----------
_LIST_ORIGINS = (list, List, Sequence)
_DICT_ORIGINS = (dict, Dict)
_TUPLE_ORIGINS = (tuple, Tuple)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _default_for(ann: Any) -> Any:
    """字段缺失且没有默认值时的占位：Optional/标量 -> None，容器 -> 空，dataclass -> 全默认"""
    origin = get_origin(ann)
    if origin is Union:
        return None
    if origin in _LIST_ORIGINS:
        return []
    if origin in _DICT_ORIGINS:
        return {}
    if origin in _TUPLE_ORIGINS:
        return ()
    if isinstance(ann, type) and is_dataclass(ann):
        return _build(ann, {}, ann.__name__)
    return None


def _mismatch(where: str, ann: Any, value: Any) -> TypeError:
    return TypeError(f'字段 {where} 类型不匹配: 期望 {ann}, 实际 {type(value).__name__} ({value!r})')


def _coerce_key(ann: Any, key: Any, where: str) -> Any:
    # JSON 对象的键总是字符串，int 键（tag_id）从数字字符串还原
    if ann is int:
        if isinstance(key, int):
            return key
        if isinstance(key, str) and key.lstrip('-').isdigit():
            return int(key)
        raise _mismatch(f'{where}<key>', ann, key)
    return _coerce(ann, key, f'{where}<key>')


def _coerce(ann: Any, value: Any, where: str) -> Any:
    """
    把 JSON 值转换成注解 ann 描述的类型；形状不对时抛 TypeError（带字段路径）。
    - float 接受 JSON 整数
    - 嵌套 dataclass 从对象构造，缺失字段取默认值
    """
    if ann is Any:
        return value

    origin = get_origin(ann)
    args = get_args(ann)

    if origin is Union:
        if value is None and type(None) in args:
            return None
        for a in args:
            if a is type(None):
                continue
            try:
                return _coerce(a, value, where)
            except TypeError:
                continue
        raise _mismatch(where, ann, value)

    if origin in _LIST_ORIGINS:
        if not isinstance(value, list):
            raise _mismatch(where, ann, value)
        inner = args[0] if args else Any
        return [_coerce(inner, v, f'{where}[{i}]') for i, v in enumerate(value)]

    if origin in _DICT_ORIGINS:
        if not isinstance(value, dict):
            raise _mismatch(where, ann, value)
        kt, vt = args if len(args) == 2 else (Any, Any)
        return {_coerce_key(kt, k, where): _coerce(vt, v, f'{where}[{k}]') for k, v in value.items()}

    if origin in _TUPLE_ORIGINS:
        if not isinstance(value, (list, tuple)):
            raise _mismatch(where, ann, value)
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_coerce(args[0], v, f'{where}[{i}]') for i, v in enumerate(value))
        if args and len(args) != len(value):
            raise _mismatch(where, ann, value)
        return tuple(_coerce(a, v, f'{where}[{i}]') for i, (a, v) in enumerate(zip(args, value)))

    if isinstance(ann, type) and is_dataclass(ann):
        if not isinstance(value, dict):
            raise _mismatch(where, ann, value)
        return _build(ann, value, where)

    if ann is float:
        if not _is_number(value):
            raise _mismatch(where, ann, value)
        return float(value)
    if ann is int or ann is bool or ann is str:
        # bool 是 int 的子类，int 字段不接受 true/false
        if not isinstance(value, ann) or (ann is int and isinstance(value, bool)):
            raise _mismatch(where, ann, value)
        return value
    return value


def _build(cls: Type[T], data: dict, where: str) -> T:
    """只取 cls 的字段：多余键忽略，缺失字段用默认值"""
    known = {f.name for f in fields(cls)}
    for k in data:
        if k not in known:
            logger.debug(f'[Config] 忽略未知字段 {where}.{k}')

    kwargs = {}
    for f in fields(cls):
        if f.name in data:
            kwargs[f.name] = _coerce(f.type, data[f.name], f'{where}.{f.name}')
        elif f.default is not MISSING:
            kwargs[f.name] = f.default
        elif f.default_factory is not MISSING:  # type: ignore
            kwargs[f.name] = f.default_factory()  # type: ignore
        else:
            kwargs[f.name] = _default_for(f.type)
            logger.debug(f'[Config] 字段 {where}.{f.name} 缺失，使用 {kwargs[f.name]!r}')
    return cls(**kwargs)


def config_from_dict(data: dict, config_class: Type[T]) -> T:
    """从 dict 构造配置；类型不匹配直接抛 TypeError（配置错误不吞掉）。"""
    if not isinstance(data, dict):
        raise TypeError(f'配置根类型必须是对象(dict)，实际是 {type(data).__name__}')
    return _build(config_class, data, config_class.__name__)


def load_config(config_file: str, config_class: Type[T]) -> Optional[T]:
    """从文件加载配置；文件不存在或内容有误时返回 None 并记录日志。"""
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = json.load(f)
        return config_from_dict(config_data, config_class)
    except FileNotFoundError:
        logger.warning(f'[Config] 配置文件不存在: {config_file}')
        return None
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.error(f'[Config] 加载 {config_file} 失败: {e}')
        return None
