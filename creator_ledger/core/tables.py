from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    ledger: Any
    users: Any
    videos: Any

T = Tables(
    ledger=ddb.Table(S.ledger_table_name),
    users=ddb.Table(S.users_table_name),
    videos=ddb.Table(S.videos_table_name),
)
