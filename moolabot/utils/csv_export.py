"""
Snapshot CSV building and temporary file handling
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger(__name__)

HEADER_WITH_ID = "discord_id,address,points,wl_role,ml_role,free_mint_role"
HEADER_WITHOUT_ID = "address,points,wl_role,ml_role,free_mint_role"


@dataclass(frozen=True)
class SnapshotRow:
    discord_id: str
    address: Optional[str]
    points: int
    wl_role: bool = False
    ml_role: bool = False
    free_mint_role: bool = False


def _flag(value: bool) -> str:
    return "Y" if value else "N"


def format_snapshot_csv(rows: Iterable[SnapshotRow], include_id: bool = False) -> str:
    """
    Render snapshot rows as CSV text

    Rows keep their input order. Values are not quoted; discord ids and
    wallet addresses never contain commas.
    """
    header = HEADER_WITH_ID if include_id else HEADER_WITHOUT_ID
    lines = []
    for row in rows:
        values = [row.address, row.points, _flag(row.wl_role), _flag(row.ml_role), _flag(row.free_mint_role)]
        if include_id:
            values.insert(0, row.discord_id)
        # a missing address is an empty field
        lines.append(",".join("" if v is None else str(v) for v in values))
    return header + "\n" + "\n".join(lines)


def build_snapshot_rows(users: Iterable, member_roles: Mapping[str, Set[int]],
                        categories: Mapping) -> List[SnapshotRow]:
    """
    Attach role flags to ranked users

    Args:
        users: objects with discord_id, address and points attributes
        member_roles: discord_id -> role ids; members missing here get all N
        categories: whitelist / moolalist / freemint RoleCategory objects
    """
    rows = []
    for user in users:
        held = member_roles.get(user.discord_id, set())
        rows.append(SnapshotRow(
            discord_id=user.discord_id,
            address=user.address,
            points=user.points,
            wl_role=categories['whitelist'].held_by(held),
            ml_role=categories['moolalist'].held_by(held),
            free_mint_role=categories['freemint'].held_by(held),
        ))
    return rows


def save_csv(content: str, filename: str, temp_dir: str = "temp") -> str:
    """Write CSV text into the temp directory and return its path"""
    directory = Path(temp_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    with open(path, 'w', encoding='utf-8', newline='') as f:
        f.write(content)
    return str(path)


def cleanup_files(paths: Iterable[str]) -> Dict[str, bool]:
    """Delete exported files, logging rather than raising on failure"""
    results = {}
    for path in paths:
        try:
            os.remove(path)
            results[path] = True
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")
            results[path] = False
    return results
