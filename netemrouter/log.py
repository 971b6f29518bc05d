import logging
from typing import MutableMapping, Optional, Sequence, Tuple


class TagsAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs) -> Tuple[str, MutableMapping]:
        tags = self.extra["tags"]  # type: ignore
        if not tags:
            return msg, kwargs
        prefix = ",".join(tags)
        return f"[{prefix}] {msg}", kwargs


def getLogger(name: str, tags: Optional[Sequence[str]] = None) -> TagsAdapter:
    """A logger whose messages are prefixed by the tags (e.g. the interface)."""
    if tags is None:
        tags = []
    logger = TagsAdapter(logging.getLogger(name), dict(tags=list(tags)))
    return logger


class DisableLogging:
    def __init__(self, level: Optional[int] = None):
        self.level = level

    def __enter__(self):
        if self.level is not None:
            logging.disable(self.level)

    def __exit__(self, et, ev, tb):
        logging.disable(logging.NOTSET)
        # implicit return of None => don't swallow exceptions
