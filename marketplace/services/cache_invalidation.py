from __future__ import annotations

import logging
from itertools import chain

from redis import RedisError
from sqlalchemy import event
from sqlalchemy.orm import Session

from marketplace.services.list_cache import get_list_cache
from marketplace.services.registry import registry_for_model, tags_to_invalidate

_LOG = logging.getLogger("marketplace.list_cache")
_TOUCHED_KEY = "listing_touched_kinds"


def _mark(session: Session, model: type | None) -> None:
    registry = registry_for_model(model) if model is not None else None
    if registry is not None:
        session.info.setdefault(_TOUCHED_KEY, set()).add(registry.tag)


def _before_flush(session: Session, flush_context, instances) -> None:
    for obj in chain(session.new, session.dirty, session.deleted):
        _mark(session, type(obj))


def _do_orm_execute(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete or orm_execute_state.is_insert):
        return
    mapper = orm_execute_state.bind_mapper
    _mark(orm_execute_state.session, mapper.class_ if mapper is not None else None)


def _after_commit(session: Session) -> None:
    tags = session.info.pop(_TOUCHED_KEY, set())
    if not tags:
        return
    tags = tags_to_invalidate(tags)
    cache = get_list_cache()
    for tag in sorted(tags):
        try:
            cache.invalidate(tag)
        except RedisError:
            # Pages of this kind stay readable until their TTL runs out.
            _LOG.warning("list cache invalidation failed for %s", tag)


def _after_rollback(session: Session) -> None:
    session.info.pop(_TOUCHED_KEY, None)


_LISTENERS = (
    ("before_flush", _before_flush),
    ("do_orm_execute", _do_orm_execute),
    ("after_commit", _after_commit),
    ("after_rollback", _after_rollback),
)


def install_cache_invalidation(target=Session) -> None:
    """Invalidate cached listing pages of every kind written in a committed transaction."""
    for name, fn in _LISTENERS:
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
