#!/usr/bin/env python3
"""
Fill a local PPOB ledger with a demo shop. Known passwords, fake sales:
never point this at a real database.

Master data (users, categories, products) is written straight through the
ORM because the API has no endpoints for it. Money only moves through the
running API, so the demo ledger is exactly what the service writes.

    pip install -e ".[demo]"
    uvicorn ppob_ledger.main:app --reload      # in another terminal
    python demo/seed.py
    python demo/seed.py --base-url http://localhost:9000
    python demo/seed.py --reset                # delete the SQLite file

Logins created:
    admin@ppobdemo.id   AdminDemo123!   ADMIN
    siti@ppobdemo.id    SitiDemo123!    KASIR
    budi@ppobdemo.id    BudiDemo123!    KASIR
"""

import argparse
import asyncio
import random
import sys
from pathlib import Path

import httpx
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ppob_ledger.config import settings
from ppob_ledger.database import Base, engine_options
from ppob_ledger.models import Category, CategoryType, Product, User, UserRole
from ppob_ledger.services import auth_service
from ppob_ledger.services.balance_service import format_rupiah

ADMIN = ("admin@ppobdemo.id", "AdminDemo123!", "Admin Toko")

# email, password, name, opening balance
CASHIERS = [
    ("siti@ppobdemo.id", "SitiDemo123!", "Siti Rahayu", 1_500_000),
    ("budi@ppobdemo.id", "BudiDemo123!", "Budi Santoso", 750_000),
]

CATEGORIES = {
    "PULSA": CategoryType.EXPENSE,
    "PAKET_DATA": CategoryType.EXPENSE,
    "PLN_TOKEN": CategoryType.EXPENSE,
    "E_WALLET": CategoryType.EXPENSE,
    "VOUCHER_GAME": CategoryType.EXPENSE,
    "SETOR_TUNAI": CategoryType.INCOME,
}

# code, name, category, base_price, selling_price, fee
PRODUCTS = [
    ("TSEL10", "Telkomsel 10.000", "PULSA", 10_250, 12_000, 0),
    ("TSEL50", "Telkomsel 50.000", "PULSA", 49_800, 51_500, 0),
    ("XL25", "XL 25.000", "PULSA", 24_900, 26_500, 0),
    ("DATA10GB", "Paket Data 10GB", "PAKET_DATA", 65_000, 70_000, 0),
    ("PLN20", "Token PLN 20.000", "PLN_TOKEN", 20_100, 22_500, 2_500),
    ("PLN100", "Token PLN 100.000", "PLN_TOKEN", 100_100, 102_500, 2_500),
    ("DANA50", "DANA 50.000", "E_WALLET", 50_500, 52_000, 1_000),
    ("ML86", "Mobile Legends 86 Diamond", "VOUCHER_GAME", 19_500, 22_000, 0),
    ("SETOR100", "Setor Tunai 100.000", "SETOR_TUNAI", 100_000, 102_500, 2_500),
]


async def provision_master_data() -> dict[str, str]:
    """Write users, categories and products. Returns product code -> id."""
    engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with factory() as session:
            taken = await session.execute(select(User.id).where(User.email == ADMIN[0]))
            if taken.first() is not None:
                sys.exit(f"{ADMIN[0]} already exists; run with --reset first")

            email, password, name = ADMIN
            await auth_service.create_user(session, email, password, name, role=UserRole.ADMIN)
            for email, password, name, _ in CASHIERS:
                await auth_service.create_user(session, email, password, name)

            session.add_all(Category(name=n, type=t) for n, t in CATEGORIES.items())

            products = [
                Product(
                    code=code, name=name, category=category,
                    base_price=base, selling_price=sell, fee=fee,
                )
                for code, name, category, base, sell, fee in PRODUCTS
            ]
            session.add_all(products)
            await session.commit()
            return {p.code: str(p.id) for p in products}
    finally:
        await engine.dispose()


class LedgerClient:
    """The handful of API calls the seed needs, bound to one base URL."""

    def __init__(self, http: httpx.AsyncClient, base_url: str):
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def _call(self, method: str, path: str, token: str | None = None, **kwargs):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return await self.http.request(method, self.base_url + path, headers=headers, **kwargs)

    async def ping(self) -> None:
        (await self._call("GET", "/health")).raise_for_status()

    async def login(self, email: str, password: str) -> tuple[str, str]:
        """Returns (token, user id)."""
        resp = await self._call("POST", "/auth/login", json={"email": email, "password": password})
        resp.raise_for_status()
        token = resp.json()["token"]
        me = await self._call("GET", "/auth/me", token)
        me.raise_for_status()
        return token, me.json()["id"]

    async def top_up(self, admin_token: str, user_id: str, amount: int) -> int:
        resp = await self._call(
            "POST", "/balance/top-up", admin_token,
            json={"amount": amount, "target_user_id": user_id, "description": "Saldo awal"},
        )
        resp.raise_for_status()
        return resp.json()["new_balance"]

    async def sell(self, token: str, product_id: str) -> dict:
        customer = "08" + "".join(random.choices("0123456789", k=10))
        resp = await self._call(
            "POST", "/transactions", token,
            json={"product_id": product_id, "customer_number": customer},
        )
        return resp.json()

    async def balance(self, token: str, user_id: str) -> int:
        resp = await self._call("GET", f"/balance/users/{user_id}", token)
        resp.raise_for_status()
        return resp.json()["balance"]


async def seed(base_url: str) -> None:
    async with httpx.AsyncClient(timeout=30.0) as http:
        api = LedgerClient(http, base_url)
        try:
            await api.ping()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            sys.exit(f"No ledger API at {base_url}; start it with: uvicorn ppob_ledger.main:app")

        product_ids = await provision_master_data()
        print(f"{len(CATEGORIES)} categories and {len(PRODUCTS)} products created")

        admin_token, _ = await api.login(ADMIN[0], ADMIN[1])

        for email, password, name, opening in CASHIERS:
            token, user_id = await api.login(email, password)
            await api.top_up(admin_token, user_id, opening)

            outcomes = {"SUCCESS": 0, "other": 0}
            for _ in range(random.randint(8, 15)):
                result = await api.sell(token, product_ids[random.choice(PRODUCTS)[0]])
                outcomes["SUCCESS" if result.get("status") == "SUCCESS" else "other"] += 1
                if result.get("error_type") == "insufficient_funds":
                    break

            closing = await api.balance(token, user_id)
            print(
                f"{name}: opened with {format_rupiah(opening)}, "
                f"{outcomes['SUCCESS']} sales, {outcomes['other']} rejected, "
                f"now {format_rupiah(closing)}"
            )

    print("\nLogins:")
    print(f"  {ADMIN[0]:<24} {ADMIN[1]:<16} ADMIN")
    for email, password, _, _ in CASHIERS:
        print(f"  {email:<24} {password:<16} KASIR")


def reset_database() -> None:
    """Remove the SQLite file behind DATABASE_URL; the server recreates it on start."""
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() != "sqlite" or not url.database:
        sys.exit("--reset only works with a SQLite file database")

    path = Path(url.database)
    if path.exists():
        path.unlink()
        print(f"Deleted {path}. Restart the server to recreate the tables.")
    else:
        print(f"Nothing to delete at {path}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a local PPOB ledger with demo data")
    parser.add_argument("--base-url", default="http://localhost:8000", help="running API")
    parser.add_argument("--reset", action="store_true", help="delete the SQLite file and exit")
    args = parser.parse_args()

    if args.reset:
        reset_database()
    else:
        asyncio.run(seed(args.base_url))


if __name__ == "__main__":
    main()
