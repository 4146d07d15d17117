from __future__ import annotations

import os
import json
import random
import asyncio
import logging
import tempfile
import traceback
from pathlib import Path
from functools import wraps
from collections import abc
from typing import Any, TypeVar, ParamSpec, cast

from .constants import LOGGER_NAME, JsonType


_T = TypeVar("_T")  # type
_P = ParamSpec("_P")  # params
_JSON_T = TypeVar("_JSON_T", bound=abc.Mapping[Any, Any])
logger = logging.getLogger(LOGGER_NAME)


def format_traceback(exc: BaseException, **kwargs: Any) -> str:
    """
    Like `traceback.print_exc` but returns a string. Uses the passed-in exception.
    Any additional `**kwargs` are passed to the underlaying `traceback.format_exception`.
    """
    return ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__, **kwargs))


def task_wrapper(
    afunc: abc.Callable[_P, abc.Coroutine[Any, Any, _T]]
) -> abc.Callable[_P, abc.Coroutine[Any, Any, _T | None]]:
    """
    Wraps a coroutine function meant to run as a background task,
    so that any exception it raises ends up in the log instead of being lost with the task.
    """
    @wraps(afunc)
    async def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _T | None:
        try:
            return await afunc(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Exception in {afunc.__qualname__} task")
            return None
    return wrapper


class ExponentialBackoff:
    def __init__(
        self,
        *,
        base: float = 2,
        variance: float | tuple[float, float] = 0.1,
        shift: float = -1,
        maximum: float = 300,
    ):
        if base <= 1:
            raise ValueError("Base has to be greater than 1")
        self.steps: int = 0
        self.base: float = float(base)
        self.shift: float = float(shift)
        self.maximum: float = float(maximum)
        self.variance_min: float
        self.variance_max: float
        if isinstance(variance, tuple):
            self.variance_min, self.variance_max = variance
        else:
            self.variance_min = 1 - variance
            self.variance_max = 1 + variance

    def __iter__(self) -> abc.Iterator[float]:
        return self

    def __next__(self) -> float:
        value: float = (
            pow(self.base, self.steps + self.shift)
            * random.uniform(self.variance_min, self.variance_max)
        )
        if value > self.maximum:
            return self.maximum
        self.steps += 1
        return value

    def reset(self) -> None:
        self.steps = 0


def merge_json(obj: JsonType, template: JsonType) -> JsonType:
    """
    Returns a copy of `obj`, with any keys missing from it filled in from the `template`.
    Keys present in `obj` but absent from the `template` are kept as-is.
    """
    merged: JsonType = dict(template)
    merged.update(obj)
    return merged


def json_load(path: Path, defaults: _JSON_T) -> _JSON_T:
    defaults_dict: JsonType = dict(defaults)
    if path.exists():
        with open(path, 'r', encoding="utf8") as file:
            loaded = json.load(file)
        if not isinstance(loaded, dict):
            raise ValueError(f"Expected a JSON object in {path}")
        combined: JsonType = merge_json(loaded, defaults_dict)
    else:
        combined = defaults_dict
    return cast(_JSON_T, combined)


def json_save(path: Path, contents: abc.Mapping[Any, Any], *, sort: bool = False) -> None:
    """
    Writes `contents` to `path` as JSON. The data is written to a temporary file first,
    and then moved in place, so that a concurrent reader never sees a partial file.
    """
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding="utf8") as file:
            json.dump(contents, file, indent=2, sort_keys=sort)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
