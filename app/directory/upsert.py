"""Transactional batch writes and the user/person relinking that follows them."""
import logging
from collections.abc import Callable, Iterable, Iterator
from itertools import islice
from typing import Any, TypeVar

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, SQLModel, select

from app.models import LocalUser, Person

logger = logging.getLogger(__name__)

T = TypeVar("T")

Row = dict[str, Any]
AfterWrite = Callable[[Session, list[Row]], Any]


class UpsertError(Exception):
    """A batch transaction failed and was rolled back."""


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Split ``items`` into lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("size must be at least 1")
    iterator = iter(items)
    while batch := list(islice(iterator, size)):
        yield batch


def upsert_statement(
    model: type[SQLModel],
    rows: list[Row],
    *,
    dialect: str,
    conflict_column: str = "api_id",
):
    """Build the ``INSERT ... ON CONFLICT DO UPDATE`` for ``rows`` on ``dialect``."""
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise UpsertError(f"Upserts are not supported on the {dialect} dialect")

    stmt = insert(model.__table__).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=[conflict_column],
        set_={name: stmt.excluded[name] for name in rows[0] if name != conflict_column},
    )


def upsert_batch(
    session: Session,
    model: type[SQLModel],
    rows: list[Row],
    *,
    conflict_column: str = "api_id",
    after: AfterWrite | None = None,
) -> int:
    """
    Insert or fully overwrite ``rows`` in one transaction.

    On a ``conflict_column`` clash every column present in the incoming row
    replaces the stored value. ``after`` runs inside the same transaction,
    once the rows are written.

    Returns the number of rows written.

    Raises:
        UpsertError: the transaction failed. Nothing from this batch is kept.
    """
    if not rows:
        return 0

    stmt = upsert_statement(
        model, rows, dialect=session.get_bind().dialect.name, conflict_column=conflict_column
    )

    try:
        session.execute(stmt)
        if after:
            after(session, rows)
        session.commit()
    except Exception as e:
        session.rollback()
        raise UpsertError(f"Failed to write {len(rows)} {model.__name__} rows: {e}") from e

    return len(rows)


def reconcile_users(session: Session, people_rows: list[Row]) -> int:
    """
    Point local users at the just-written Person rows with the same email.

    Emails are compared case-insensitively and exactly. A user whose linked
    person no longer shares their email is unlinked. If several people in the
    batch share an email the last one wins; if several users match one
    person, the oldest user keeps the link.

    Returns the number of users whose link changed.
    """
    api_ids = [row["api_id"] for row in people_rows]
    persons = session.exec(select(Person).where(Person.api_id.in_(api_ids))).all()
    by_api_id = {person.api_id: person for person in persons}
    by_id = {person.id: person for person in persons}

    person_by_email: dict[str, Person] = {}
    for row in people_rows:
        person = by_api_id.get(row["api_id"])
        if person is not None:
            person_by_email[person.email.lower()] = person

    changed = 0

    stale_candidates = session.exec(
        select(LocalUser).where(LocalUser.person_id.in_(list(by_id)))
    ).all()
    for user in stale_candidates:
        if user.email.lower() != by_id[user.person_id].email.lower():
            logger.info(f"Unlinking user {user.id} from person {user.person_id}, emails differ")
            user.person_id = None
            session.add(user)
            changed += 1

    if not person_by_email:
        return changed

    matching_users = session.exec(
        select(LocalUser)
        .where(func.lower(LocalUser.email).in_(list(person_by_email)))
        .order_by(LocalUser.id)
    ).all()

    claimed: set[int] = set()
    for user in matching_users:
        person = person_by_email[user.email.lower()]
        target = None if person.id in claimed else person.id
        if target is not None:
            claimed.add(target)
        if user.person_id != target:
            user.person_id = target
            session.add(user)
            changed += 1

    session.flush()
    if changed:
        logger.debug(f"Reconciled {changed} user links")
    return changed


def reconcile_unlinked_users(session: Session) -> int:
    """
    Link every unlinked user to an already stored Person with the same email.

    Covers users who registered after their Person was synced, which an
    incremental pass never fetches again. Persons already linked to another
    user are left alone; among several people sharing an email the most
    recently stored one is used. Commits.

    Returns the number of users linked.
    """
    users = session.exec(
        select(LocalUser).where(LocalUser.person_id.is_(None)).order_by(LocalUser.id)
    ).all()
    if not users:
        return 0

    emails = {user.email.lower() for user in users}
    people = session.exec(
        select(Person).where(func.lower(Person.email).in_(list(emails))).order_by(Person.id)
    ).all()
    person_by_email = {person.email.lower(): person for person in people}
    claimed = set(
        session.exec(select(LocalUser.person_id).where(LocalUser.person_id.is_not(None))).all()
    )

    linked = 0
    for user in users:
        person = person_by_email.get(user.email.lower())
        if person is None or person.id in claimed:
            continue
        user.person_id = person.id
        claimed.add(person.id)
        session.add(user)
        linked += 1

    session.commit()
    if linked:
        logger.info(f"Linked {linked} users to previously synced people")
    return linked
