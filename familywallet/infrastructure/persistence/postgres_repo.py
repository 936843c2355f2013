import asyncio
from datetime import datetime
from typing import List, Optional

import psycopg2

from familywallet.core.entities.token_rate import TokenRate
from familywallet.core.entities.trade import TradeResponse
from familywallet.core.entities.user import Family, FamilyCurrency, User
from familywallet.core.interfaces.repository import ITokenRateRepository, IWalletRepository


class PostgresRepo(IWalletRepository, ITokenRateRepository):
    """
    Reads user/family/trade rows written by the rest of the app and owns
    the token_rates table. psycopg2 is blocking, so every public method
    runs its query in a worker thread.
    """

    def __init__(self, dsn: str):
        self.dsn = dsn
        self._init_db()

    def _init_db(self):
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS families (
                id VARCHAR PRIMARY KEY,
                currency VARCHAR NOT NULL DEFAULT 'USDC',
                currency_address VARCHAR
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id VARCHAR PRIMARY KEY,
                address VARCHAR,
                private_key TEXT,
                dek TEXT,
                private_key_downloaded BOOLEAN NOT NULL DEFAULT FALSE,
                family_id VARCHAR REFERENCES families(id)
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS token_trades (
                id VARCHAR PRIMARY KEY,
                user_id VARCHAR NOT NULL,
                from_amount DECIMAL,
                from_token VARCHAR,
                to_amount DECIMAL,
                to_token VARCHAR,
                exchange_rate DECIMAL,
                tx_hash VARCHAR,
                created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                completed_at TIMESTAMPTZ
            );
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS token_rates (
                id BIGSERIAL PRIMARY KEY,
                contract VARCHAR NOT NULL,
                usd_price DOUBLE PRECISION NOT NULL,
                timestamp TIMESTAMPTZ NOT NULL
            );
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS token_rates_contract_ts ON token_rates (contract, timestamp);")

        conn.commit()
        cur.close()
        conn.close()

    # --- Users & families ---

    def _select_user(self, user_id: str) -> Optional[User]:
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute("""
            SELECT u.id, u.address, u.private_key, u.dek, u.private_key_downloaded, u.family_id,
                   f.id, f.currency, f.currency_address
            FROM users u
            LEFT JOIN families f ON f.id = u.family_id
            WHERE u.id = %s
        """, (user_id,))
        row = cur.fetchone()

        cur.close()
        conn.close()

        if not row:
            return None

        family = None
        if row[6] is not None:
            family = Family(id=row[6], currency=FamilyCurrency(row[7]), currency_address=row[8])

        return User(
            id=row[0],
            address=row[1],
            encrypted_private_key=row[2],
            dek=row[3],
            private_key_downloaded=bool(row[4]),
            family_id=row[5],
            family=family,
        )

    def _set_downloaded(self, user_id: str) -> bool:
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        # One-way latch: never written back to FALSE.
        cur.execute("UPDATE users SET private_key_downloaded = TRUE WHERE id = %s", (user_id,))
        updated = cur.rowcount

        conn.commit()
        cur.close()
        conn.close()
        return updated > 0

    def _select_trades(self, user_id: str, limit: int) -> List[TradeResponse]:
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute("""
            SELECT id, user_id, from_amount, from_token, to_amount, to_token,
                   exchange_rate, tx_hash, created_at, completed_at
            FROM token_trades
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT %s
        """, (user_id, limit))
        rows = cur.fetchall()

        trades = []
        for row in rows:
            trades.append(TradeResponse(
                id=row[0],
                userId=row[1],
                fromAmount=float(row[2]),
                fromToken=row[3],
                toAmount=float(row[4]),
                toToken=row[5],
                exchangeRate=float(row[6]),
                txHash=row[7],
                createdAt=row[8],
                completedAt=row[9]
            ))

        cur.close()
        conn.close()
        return trades

    async def get_user(self, user_id: str) -> Optional[User]:
        return await asyncio.to_thread(self._select_user, user_id)

    async def mark_private_key_downloaded(self, user_id: str) -> bool:
        return await asyncio.to_thread(self._set_downloaded, user_id)

    async def get_trades(self, user_id: str, limit: int = 10) -> List[TradeResponse]:
        return await asyncio.to_thread(self._select_trades, user_id, limit)

    # --- Token rates ---

    def _select_rate_between(self, contract: str, start: datetime, end: datetime) -> Optional[TokenRate]:
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute("""
            SELECT id, contract, usd_price, timestamp
            FROM token_rates
            WHERE contract = %s AND timestamp >= %s AND timestamp <= %s
            LIMIT 1
        """, (contract.lower(), start, end))
        row = cur.fetchone()

        cur.close()
        conn.close()
        if not row:
            return None
        return TokenRate(id=str(row[0]), contract=row[1], usd_price=row[2], timestamp=row[3])

    def _insert_rate(self, rate: TokenRate):
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute(
            "INSERT INTO token_rates (contract, usd_price, timestamp) VALUES (%s, %s, %s)",
            (rate.contract.lower(), rate.usd_price, rate.timestamp),
        )

        conn.commit()
        cur.close()
        conn.close()

    def _select_rate_history(self, contract: str, limit: int) -> List[TokenRate]:
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute("""
            SELECT id, contract, usd_price, timestamp
            FROM token_rates
            WHERE contract = %s
            ORDER BY timestamp ASC
            LIMIT %s
        """, (contract.lower(), limit))
        rows = cur.fetchall()

        cur.close()
        conn.close()
        return [TokenRate(id=str(r[0]), contract=r[1], usd_price=r[2], timestamp=r[3]) for r in rows]

    def _delete_rates_before(self, cutoff: datetime) -> int:
        conn = psycopg2.connect(self.dsn)
        cur = conn.cursor()

        cur.execute("DELETE FROM token_rates WHERE timestamp < %s", (cutoff,))
        deleted = cur.rowcount

        conn.commit()
        cur.close()
        conn.close()
        return deleted

    async def find_rate_between(self, contract: str, start: datetime, end: datetime) -> Optional[TokenRate]:
        return await asyncio.to_thread(self._select_rate_between, contract, start, end)

    async def insert_rate(self, rate: TokenRate) -> None:
        await asyncio.to_thread(self._insert_rate, rate)

    async def get_rate_history(self, contract: str, limit: int = 24) -> List[TokenRate]:
        return await asyncio.to_thread(self._select_rate_history, contract, limit)

    async def delete_rates_older_than(self, cutoff: datetime) -> int:
        return await asyncio.to_thread(self._delete_rates_before, cutoff)
