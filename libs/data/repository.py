"""
Repository pattern for data access abstraction
"""

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .models import TradingConfig


class BaseRepository(ABC):
    """Base repository interface"""

    def __init__(self, db_path: str = "futures_dashboard.db"):
        self.db_path = db_path
        self.init_db()

    @abstractmethod
    def init_db(self) -> None:
        """Initialize database tables"""
        pass


class TradingConfigRepository(BaseRepository):
    """Repository for the single trading configuration record"""

    CONFIG_ID = 1

    def init_db(self) -> None:
        """Initialize trading_config table"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS trading_config (
                    id INTEGER PRIMARY KEY,
                    api_key TEXT,
                    api_secret TEXT,
                    long_leverage REAL NOT NULL,
                    long_margin REAL NOT NULL,
                    short_leverage REAL NOT NULL,
                    short_margin REAL NOT NULL,
                    take_profit REAL,
                    stop_loss REAL,
                    default_limit INTEGER NOT NULL,
                    ignored_symbols TEXT,
                    copytrading_mode INTEGER NOT NULL DEFAULT 0,
                    copytrading_api_key TEXT,
                    copytrading_api_secret TEXT,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get(self) -> Optional[TradingConfig]:
        """Get the stored configuration, if any"""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute("SELECT * FROM trading_config WHERE id = ?", (self.CONFIG_ID,))
            row = cursor.fetchone()
            if row:
                return self._row_to_config(row)
        return None

    def save(self, config: TradingConfig) -> TradingConfig:
        """Create or replace the configuration"""
        config.updated_at = datetime.utcnow()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT OR REPLACE INTO trading_config
                (id, api_key, api_secret, long_leverage, long_margin, short_leverage,
                 short_margin, take_profit, stop_loss, default_limit, ignored_symbols,
                 copytrading_mode, copytrading_api_key, copytrading_api_secret, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                self.CONFIG_ID, config.api_key, config.api_secret,
                config.long_leverage, config.long_margin,
                config.short_leverage, config.short_margin,
                config.take_profit, config.stop_loss, config.default_limit,
                config.ignored_symbols or None, int(config.copytrading_mode),
                config.copytrading_api_key, config.copytrading_api_secret,
                config.updated_at.isoformat()
            ))
            conn.commit()
        return config

    def _row_to_config(self, row: sqlite3.Row) -> TradingConfig:
        """Convert database row to TradingConfig model"""
        return TradingConfig(
            api_key=row["api_key"],
            api_secret=row["api_secret"],
            long_leverage=row["long_leverage"],
            long_margin=row["long_margin"],
            short_leverage=row["short_leverage"],
            short_margin=row["short_margin"],
            take_profit=row["take_profit"],
            stop_loss=row["stop_loss"],
            default_limit=row["default_limit"],
            ignored_symbols=row["ignored_symbols"],
            copytrading_mode=bool(row["copytrading_mode"]),
            copytrading_api_key=row["copytrading_api_key"],
            copytrading_api_secret=row["copytrading_api_secret"],
            updated_at=datetime.fromisoformat(row["updated_at"])
        )
