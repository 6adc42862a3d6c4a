from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum


class EventType(str, Enum):
    START = "start"
    SUCCESS = "success"
    FAIL = "fail"
    CHECK = "check"
    FOUND = "found"
    CACHED = "cached"
    BUILD = "build"
    UPLOAD = "upload"
    DEBUG = "debug"


EventEmitter = Callable[[EventType, str], None]


def logging_emitter(logger: logging.Logger) -> EventEmitter:
    def emit(event: EventType, message: str) -> None:
        if event is EventType.DEBUG:
            logger.debug("[%s] %s", event.value, message)
        elif event is EventType.FAIL:
            logger.error("[%s] %s", event.value, message)
        else:
            logger.info("[%s] %s", event.value, message)

    return emit
