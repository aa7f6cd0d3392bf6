"""
catalog.py
Membership level catalog and member record helpers (create, edit, delegates, archive).
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Sequence

import utils
from models import DELEGATE, YOUTH_DELEGATE, Delegate, Member, MembershipGroup, MembershipLevel, ValidationError

logger = logging.getLogger(__name__)

UNKNOWN_LEVEL = "Unknown Level"


def all_levels(groups: Iterable[MembershipGroup]) -> list[MembershipLevel]:
    return [lvl for g in groups for lvl in g.levels]


def find_level(groups: Iterable[MembershipGroup], level_id: str) -> MembershipLevel | None:
    return next((lvl for lvl in all_levels(groups) if lvl.id == level_id), None)


def group_of(groups: Iterable[MembershipGroup], level_id: str) -> str | None:
    for g in groups:
        if any(lvl.id == level_id for lvl in g.levels):
            return g.group_name
    return None


def level_name(groups: Iterable[MembershipGroup], level_id: str) -> str:
    level = find_level(groups, level_id)
    return level.name if level else UNKNOWN_LEVEL


def new_level_id(name: str, now: datetime) -> str:
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return f"{slug}-{int(now.timestamp() * 1000)}"


def save_level(groups: Sequence[MembershipGroup], level: MembershipLevel, group_name: str) -> tuple[MembershipGroup, ...]:
    """
    Insert or update `level` inside `group_name`, creating the group if needed.
    A level saved under a different group than before is moved there.
    """
    errors = utils.validate_level_inputs(level.name, group_name, level.joining_fee, level.annual_fee,
                                         level.delegates, level.youth_delegates)
    if errors:
        raise ValidationError(errors)

    group_name = group_name.strip()
    updated: list[MembershipGroup] = []
    placed = False
    for g in groups:
        levels = [lvl for lvl in g.levels if lvl.id != level.id or g.group_name == group_name]
        if g.group_name == group_name:
            if any(lvl.id == level.id for lvl in levels):
                levels = [level if lvl.id == level.id else lvl for lvl in levels]
            else:
                levels.append(level)
            placed = True
        updated.append(replace(g, levels=tuple(levels)))
    if not placed:
        updated.append(MembershipGroup(group_name, (level,)))

    logger.info("Saved level %s in group %s", level.id, group_name)
    return tuple(updated)


def level_member_counts(groups: Iterable[MembershipGroup], members: Iterable[Member]) -> dict[str, int]:
    """Active (non-archived) members per level id."""
    counts = {lvl.id: 0 for lvl in all_levels(groups)}
    for m in members:
        if not m.is_globally_archived and m.membership_level_id in counts:
            counts[m.membership_level_id] += 1
    return counts


# ---------- Members ----------

def sync_delegates(delegates: Sequence[Delegate], level: MembershipLevel | None) -> tuple[Delegate, ...]:
    """
    Resize the delegate list to what `level` allows.
    Existing names are kept by position within each delegate type.
    """
    if level is None:
        return ()
    normal = [d.name for d in delegates if d.type == DELEGATE]
    youth = [d.name for d in delegates if d.type == YOUTH_DELEGATE]
    synced = [Delegate(normal[i] if i < len(normal) else "", DELEGATE) for i in range(level.delegates)]
    synced += [Delegate(youth[i] if i < len(youth) else "", YOUTH_DELEGATE) for i in range(level.youth_delegates)]
    return tuple(synced)


def _check_member(name: str, level_id: str, start_date: str, end_date: str) -> None:
    errors = utils.validate_member_inputs(name, level_id, start_date, end_date)
    if errors:
        raise ValidationError(errors)


def create_member(
    name: str,
    level: MembershipLevel,
    start_date: str,
    end_date: str,
    contact_name: str = "",
    telephone: str = "",
    postal_address: str = "",
    delegates: Sequence[Delegate] = (),
    now: datetime | None = None,
) -> Member:
    now = now or datetime.now()
    _check_member(name, level.id, start_date, end_date)
    return Member(
        id=f"mem-{uuid.uuid4().hex[:12]}",
        name=name.strip(),
        membership_level_id=level.id,
        start_date=start_date,
        end_date=end_date,
        contact_name=contact_name.strip(),
        telephone=telephone.strip(),
        postal_address=postal_address.strip(),
        delegates=sync_delegates(delegates, level),
        created_date=now.isoformat(timespec="seconds"),
    )


def update_member(member: Member, level: MembershipLevel | None, **changes) -> Member:
    """Apply form `changes` to `member`; delegates are re-synced against `level`."""
    updated = replace(member, **changes)
    _check_member(updated.name, updated.membership_level_id, updated.start_date, updated.end_date)
    return replace(updated, name=updated.name.strip(), delegates=sync_delegates(updated.delegates, level))


def archive_member(member: Member, now: datetime | None = None) -> Member:
    if member.is_globally_archived:
        return member
    now = now or datetime.now()
    logger.info("Archived member %s", member.id)
    return replace(member, is_globally_archived=True, archived_date=now.date().isoformat())


def replace_member(members: Iterable[Member], member: Member) -> list[Member]:
    return [member if m.id == member.id else m for m in members]
