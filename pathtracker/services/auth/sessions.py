from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from pathtracker.core.errors import ErrorCode, TrackerError, storage_operation
from pathtracker.db.database import Database
from pathtracker.db.tables import AccountUser


@dataclass(frozen=True)
class SessionIdentity:
    account_user_id: str
    tenant_id: str


class SessionResolver:
    """Maps the upstream identity header onto the account's tenant.

    The header is set by the fronting identity proxy and is trusted as-is.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def resolve(self, external_user_id: str | None) -> SessionIdentity:
        if not external_user_id:
            raise TrackerError(ErrorCode.UNAUTHORIZED, "Unauthorized")

        async with storage_operation("resolve_session"):
            async with self._database.session() as session:
                row = (
                    await session.execute(
                        select(AccountUser.account_user_id, AccountUser.tenant_id).where(
                            AccountUser.external_user_id == external_user_id
                        )
                    )
                ).first()

        if row is None:
            raise TrackerError(ErrorCode.UNAUTHORIZED, "No account found for this user")
        return SessionIdentity(account_user_id=row.account_user_id, tenant_id=row.tenant_id)
