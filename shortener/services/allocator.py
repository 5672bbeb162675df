"""Short code allocation.

Generated codes are the base-62 encoding of the record's store identity, so
they are written in two phases inside one store transaction::

    MappingDraft --insert--> PendingMapping (id set, short_code NULL)
                 --update--> UrlMapping     (short_code = encode_base62(id))

Should the transaction be lost between the phases on a store without
rollback, the pending row keeps a NULL code and can never be resolved. That
row is a known, harmless leak.

Custom aliases are known up front and are written in a single insert. The
store's unique constraint on ``short_code`` has the final word on races.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, Optional

from ..crud import RecordStore
from ..errors import AliasConflictError, DuplicateCodeError, InvalidInputError, StoreError
from ..models import UrlMapping
from ..utils import encode_base62, is_base62

logger = logging.getLogger(__name__)


class MappingDraft(NamedTuple):
    original_url: str
    creation_date: datetime
    expiration_date: Optional[datetime] = None

    def to_record(self, short_code: Optional[str] = None) -> UrlMapping:
        return UrlMapping(
            original_url=self.original_url,
            short_code=short_code,
            creation_date=self.creation_date,
            expiration_date=self.expiration_date,
            click_count=0,
        )


@dataclass(frozen=True)
class PendingMapping:
    """A stored record that owns an identity but has no short code yet."""

    record: UrlMapping

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def short_code(self) -> str:
        return encode_base62(self.record.id)


def validate_alias(alias: str, max_length: int) -> None:
    if len(alias) > max_length:
        raise InvalidInputError(f"Custom alias must be at most {max_length} characters")
    if not is_base62(alias):
        raise InvalidInputError("Custom alias may only contain the characters 0-9, a-z and A-Z")


async def reserve_identity(store: RecordStore, draft: MappingDraft) -> PendingMapping:
    record = await store.insert(draft.to_record())
    return PendingMapping(record)


async def attach_code(store: RecordStore, pending: PendingMapping) -> UrlMapping:
    record = pending.record
    record.short_code = pending.short_code
    await store.update(record)
    return record


async def allocate_generated_code(store: RecordStore, draft: MappingDraft, max_attempts: int) -> UrlMapping:
    """Store ``draft`` under the code derived from its new identity.

    Aliases share the code space, so an alias may already hold the derived
    code. The pending row is then dropped and a fresh identity reserved.
    Must run inside ``store.transaction()``.
    """
    for _ in range(max_attempts):
        pending = await reserve_identity(store, draft)
        if await store.find_by_code(pending.short_code) is None:
            return await attach_code(store, pending)

        logger.warning(
            f"Derived code {pending.short_code} for id {pending.id} is held by an alias, reserving a new identity"
        )
        await store.discard(pending.record)

    raise StoreError(f"Could not allocate a unique short code after {max_attempts} attempts")


async def allocate_alias(store: RecordStore, draft: MappingDraft, alias: str) -> UrlMapping:
    """Store ``draft`` under a caller-chosen code. Must run inside ``store.transaction()``."""
    if await store.find_by_code(alias) is not None:
        raise AliasConflictError(alias)

    try:
        return await store.insert(draft.to_record(short_code=alias))
    except DuplicateCodeError:
        # Another request claimed the alias between the check and the insert
        raise AliasConflictError(alias) from None
