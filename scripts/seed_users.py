#!/usr/bin/env python3
"""Seed the database with demo policyholders across the Gulf Coast ZIP table.

Users are inserted directly through the ORM, so the API does not need to be
running. Existing emails are skipped, which makes the script safe to re-run.

Usage:
    python scripts/seed_users.py

    # Point at another database:
    DATABASE_URL=postgresql+asyncpg://relief:relief@db:5432/relief python scripts/seed_users.py
"""

import asyncio
from datetime import datetime, timezone

from sqlalchemy import select

from instarelief.core.database import async_session_factory
from instarelief.models import User, UserStatus
from instarelief.services.policy import generate_policy_id

# Wallets are well-known throwaway addresses; fund them on a testnet if you
# want catastrophe payouts to show up in a wallet UI.
SAMPLE_USERS = [
    {
        "first_name": "Dana",
        "last_name": "Robichaux",
        "email": "dana.robichaux@example.com",
        "phone": "9855550101",
        "zip": "70401",
        "wallet_address": "0x1111111111111111111111111111111111111111",
    },
    {
        "first_name": "Marcus",
        "last_name": "Thibodeaux",
        "email": "marcus.thibodeaux@example.com",
        "phone": "9855550102",
        "zip": "70401",
        "wallet_address": "0x2222222222222222222222222222222222222222",
    },
    {
        "first_name": "Priya",
        "last_name": "Natarajan",
        "email": "priya.natarajan@example.com",
        "phone": "2285550103",
        "zip": "39501",
        "wallet_address": "0x3333333333333333333333333333333333333333",
    },
    {
        "first_name": "Luis",
        "last_name": "Ortega",
        "email": "luis.ortega@example.com",
        "phone": "7135550104",
        "zip": "77002",
        "wallet_address": "0x4444444444444444444444444444444444444444",
    },
    {
        "first_name": "Grace",
        "last_name": "Fontenot",
        "email": "grace.fontenot@example.com",
        "phone": "5045550105",
        "zip": "70112",
        "wallet_address": None,
    },
]


async def seed():
    print("Seeding demo policyholders...")
    created = 0
    async with async_session_factory() as session:
        for entry in SAMPLE_USERS:
            existing = await session.scalar(select(User).where(User.email == entry["email"]))
            if existing is not None:
                print(f"  Already exists: {entry['email']} ({existing.policy_id})")
                continue

            user = User(
                **entry,
                policy_id=generate_policy_id(entry["zip"]),
                status=UserStatus.ACTIVE,
                is_activated=True,
                balance=0.0,
                created_at=datetime.now(timezone.utc),
            )
            session.add(user)
            created += 1
            print(f"  Created: {user.display_name} <{user.email}> ZIP {user.zip} -> {user.policy_id}")
        await session.commit()

    print(f"\nSeeded {created} users.")


if __name__ == "__main__":
    asyncio.run(seed())
