#!/usr/bin/env python3
"""Grant the admin role to an existing user.

Admins cannot be self-assigned at registration; bootstrap the first one
with:

    python scripts/grant_admin.py <user_id>
"""

import asyncio
import logging
import sys
import uuid

from gigescrow.database import async_session_factory, engine
from gigescrow.models.user import AppRole
from gigescrow.services.user import grant_role


async def main(user_id: uuid.UUID) -> None:
    try:
        async with async_session_factory() as db:
            user = await grant_role(db, user_id, AppRole.ADMIN)
            print(f"{user.email} now has roles: {sorted(r.role.value for r in user.roles)}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(uuid.UUID(sys.argv[1])))
