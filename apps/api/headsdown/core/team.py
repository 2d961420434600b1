from __future__ import annotations

import re
from dataclasses import dataclass

_non_id_re = re.compile(r"[^A-Z0-9]")


def canonical_member_id(raw: str) -> str:
    # Config values are often pasted from chat, so smart quotes and stray spaces show up.
    return _non_id_re.sub("", raw.strip().upper())


@dataclass(frozen=True)
class TeamRoster:
    """Allow-listed members in configured order.

    Order matters: the routing engine walks `member_ids` front to back and the
    first guarded member whose DM matches wins.
    """

    member_ids: tuple[str, ...]
    _members: frozenset[str]

    @classmethod
    def from_config(cls, raw: str) -> TeamRoster:
        ordered: list[str] = []
        seen: set[str] = set()
        for piece in raw.split(","):
            member_id = canonical_member_id(piece)
            if not member_id or member_id in seen:
                continue
            seen.add(member_id)
            ordered.append(member_id)
        return cls(member_ids=tuple(ordered), _members=frozenset(seen))

    def is_member(self, candidate: str | None) -> bool:
        if not candidate:
            return False
        return canonical_member_id(candidate) in self._members

    def __len__(self) -> int:
        return len(self.member_ids)
