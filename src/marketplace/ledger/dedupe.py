"""Insert-if-absent on a unique ``dedupe_key``.

Shared by the ledger repositories, which expose these as their own
``by_dedupe_key`` and ``record_if_absent`` methods. A second writer racing on
the same key either sees the row on the pre-check or trips the unique
constraint; both paths hand back the existing row instead of failing.
"""

from protean.exceptions import ValidationError


def find_by_dedupe_key(repository, dedupe_key):
    return repository._dao.query.filter(dedupe_key=dedupe_key).all().first


def record_if_absent(repository, dedupe_key, **fields):
    """Return ``(record, created)`` for ``dedupe_key``."""
    existing = find_by_dedupe_key(repository, dedupe_key)
    if existing is not None:
        return existing, False

    record = repository.meta_.part_of(dedupe_key=dedupe_key, **fields)
    try:
        repository.add(record)
    except ValidationError as exc:
        if "dedupe_key" not in exc.messages:
            raise
        existing = find_by_dedupe_key(repository, dedupe_key)
        if existing is None:
            raise
        return existing, False
    return record, True
