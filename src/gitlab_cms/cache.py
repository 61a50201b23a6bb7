"""Local cache of decoded file content, keyed by blob id."""

import logging
import typing as tp

import fsspec

logger = logging.getLogger(__name__)

DEFAULT_CACHE_URL = "memory://gitlab-cms-cache"


class FileCache:
    """Key/value store on top of an fsspec mapper.

    The default ``memory://`` store is shared by the whole process. Any other
    fsspec URL works too, e.g. ``file:///var/cache/cms`` to keep content
    across restarts.

    Parameters
    ----------
    url : str, optional
        fsspec URL of the store, ignored when ``mapper`` is given
    mapper : MutableMapping[str, bytes], optional
        Pre-built store
    """

    key_prefix = "gl."

    def __init__(
        self,
        url: str = DEFAULT_CACHE_URL,
        mapper: tp.MutableMapping[str, bytes] | None = None,
    ):
        self.mapper = mapper if mapper is not None else fsspec.get_mapper(url)

    @classmethod
    def key_for(cls, id: str) -> str:
        return f"{cls.key_prefix}{id}"

    def get(self, key: str) -> str | None:
        value = self.mapper.get(key)
        if value is None:
            logger.debug("Cache miss for %s", key)
            return None
        logger.debug("Cache hit for %s", key)
        return value.decode("utf-8")

    def set(self, key: str, value: str) -> None:
        self.mapper[key] = value.encode("utf-8")
