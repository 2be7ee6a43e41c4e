"""
Persistence layer for portfolio snapshots.

This module provides the persistence collaborator: a SQLite-backed
key-value store of serialized Portfolio snapshots (one JSON blob per
portfolio id), plus CSV export of holdings and transactions and CSV
import of transactions.
"""

import csv
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union
import structlog

from src.exceptions import StorageError
from .snapshot import Portfolio
from .transaction import TransactionInput

logger = structlog.get_logger(__name__)

HOLDINGS_CSV_COLUMNS = [
    'holding_id', 'symbol', 'name', 'quantity', 'average_price', 'total_cost',
    'current_price', 'current_value', 'gain_loss', 'gain_loss_percent',
    'currency', 'purchase_date', 'purchase_price', 'notes'
]

TRANSACTIONS_CSV_COLUMNS = [
    'transaction_id', 'symbol', 'type', 'quantity', 'price', 'fees',
    'total_amount', 'date', 'currency', 'notes'
]


class PortfolioStorage:
    """
    Persistent storage for portfolio snapshots using SQLite.

    A saved-then-loaded snapshot is value-equal to the original,
    datetimes included.

    Example:
        >>> storage = PortfolioStorage("portfolio.db")
        >>> storage.save(portfolio)
        >>> storage.load(portfolio.id) == portfolio
        True
    """

    def __init__(self, db_path: Union[str, Path] = "portfolio.db"):
        """
        Initialize portfolio storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        self._connection: Optional[sqlite3.Connection] = None

        # For in-memory databases, keep persistent connection
        if self.db_path == ":memory:":
            self._connection = sqlite3.connect(self.db_path, check_same_thread=False)

        self._init_database()

        logger.info("portfolio_storage_initialized", db_path=self.db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction (reused for in-memory DBs)."""
        if self._connection is not None:
            with self._connection:
                yield self._connection
            return

        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema."""
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS portfolio_snapshots (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        payload TEXT NOT NULL,
                        last_updated TEXT NOT NULL,
                        saved_at TEXT NOT NULL
                    )
                """)

                conn.execute("""
                    CREATE INDEX IF NOT EXISTS idx_snapshots_name
                    ON portfolio_snapshots(name)
                """)

                logger.debug("database_schema_initialized")

        except (sqlite3.Error, OSError) as e:
            raise StorageError(
                "Failed to initialize database",
                details={"db_path": self.db_path},
                cause=e
            )

    def save(self, portfolio: Portfolio) -> None:
        """
        Save (insert or replace) a portfolio snapshot.

        Raises:
            StorageError: If save operation fails
        """
        payload = json.dumps(portfolio.to_dict())

        try:
            with self._connect() as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO portfolio_snapshots
                        (id, name, payload, last_updated, saved_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    portfolio.id,
                    portfolio.name,
                    payload,
                    portfolio.last_updated.isoformat(),
                    datetime.now().isoformat()
                ))

            logger.info(
                "portfolio_saved",
                portfolio_id=portfolio.id,
                portfolio_name=portfolio.name,
                holdings=len(portfolio.holdings),
                transactions=len(portfolio.transactions)
            )

        except sqlite3.Error as e:
            raise StorageError(
                "Failed to save portfolio",
                details={"portfolio_id": portfolio.id},
                cause=e
            )

    def _decode(self, portfolio_id: str, payload: str) -> Portfolio:
        try:
            return Portfolio.from_dict(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(
                "Stored portfolio is corrupt",
                details={"portfolio_id": portfolio_id},
                cause=e
            )

    def load(self, portfolio_id: str) -> Optional[Portfolio]:
        """
        Load a portfolio snapshot by id.

        Returns:
            Portfolio if found, None otherwise

        Raises:
            StorageError: If the database cannot be read or the payload is corrupt
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT payload FROM portfolio_snapshots WHERE id = ?",
                    (portfolio_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to load portfolio",
                details={"portfolio_id": portfolio_id},
                cause=e
            )

        if not row:
            logger.warning("portfolio_not_found", portfolio_id=portfolio_id)
            return None

        portfolio = self._decode(portfolio_id, row[0])
        logger.info(
            "portfolio_loaded",
            portfolio_id=portfolio_id,
            holdings=len(portfolio.holdings),
            transactions=len(portfolio.transactions)
        )
        return portfolio

    def load_by_name(self, name: str) -> Optional[Portfolio]:
        """Load the most recently saved portfolio with the given name."""
        try:
            with self._connect() as conn:
                row = conn.execute("""
                    SELECT id, payload FROM portfolio_snapshots
                    WHERE name = ?
                    ORDER BY saved_at DESC
                    LIMIT 1
                """, (name,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to load portfolio",
                details={"portfolio_name": name},
                cause=e
            )

        if not row:
            logger.warning("portfolio_not_found", portfolio_name=name)
            return None
        return self._decode(row[0], row[1])

    def list_portfolios(self) -> List[Dict[str, str]]:
        """
        List all saved portfolios.

        Returns:
            List of {"id", "name", "last_updated"} dicts ordered by name
        """
        try:
            with self._connect() as conn:
                rows = conn.execute("""
                    SELECT id, name, last_updated FROM portfolio_snapshots
                    ORDER BY name, saved_at
                """).fetchall()
        except sqlite3.Error as e:
            raise StorageError("Failed to list portfolios", cause=e)

        return [
            {"id": row[0], "name": row[1], "last_updated": row[2]}
            for row in rows
        ]

    def delete(self, portfolio_id: str) -> bool:
        """
        Delete a saved portfolio.

        Returns:
            True if a snapshot was deleted, False if none existed
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "DELETE FROM portfolio_snapshots WHERE id = ?",
                    (portfolio_id,)
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageError(
                "Failed to delete portfolio",
                details={"portfolio_id": portfolio_id},
                cause=e
            )

        if deleted:
            logger.info("portfolio_deleted", portfolio_id=portfolio_id)
        return deleted

    def export_to_csv(self, portfolio: Portfolio, output_dir: str = ".") -> Dict[str, str]:
        """
        Export a portfolio to CSV files.

        Creates two CSV files:
        - {portfolio_name}_holdings.csv
        - {portfolio_name}_transactions.csv

        Args:
            portfolio: Snapshot to export
            output_dir: Output directory (default current directory)

        Returns:
            Dictionary with paths to created files

        Example:
            >>> files = storage.export_to_csv(portfolio, "/tmp")
            >>> print(files['holdings'])
            /tmp/My_Portfolio_holdings.csv
        """
        output_path = Path(output_dir)
        safe_name = portfolio.name.replace(" ", "_").replace("/", "_")
        holdings_file = output_path / f"{safe_name}_holdings.csv"
        transactions_file = output_path / f"{safe_name}_transactions.csv"

        try:
            output_path.mkdir(parents=True, exist_ok=True)

            with open(holdings_file, 'w', newline='') as f:
                writer = csv.writer(f)
                writer.writerow(HOLDINGS_CSV_COLUMNS)

                for holding in portfolio.holdings:
                    writer.writerow([
                        holding.id,
                        holding.symbol,
                        holding.asset.name,
                        holding.quantity,
                        holding.average_price,
                        holding.total_cost,
                        holding.asset.current_price,
                        holding.current_value,
                        holding.gain_loss,
                        holding.gain_loss_percent,
                        holding.asset.currency,
                        holding.purchase_date.date().isoformat() if holding.purchase_date else '',
                        holding.purchase_price if holding.purchase_price is not None else '',
                        holding.notes or ''
                    ])

            with open(transactions_file, 'w', newline='') as f:
                writer = csv.writer(f)
                writer.writerow(TRANSACTIONS_CSV_COLUMNS)

                for txn in portfolio.transactions:
                    writer.writerow([
                        txn.id,
                        txn.symbol,
                        txn.transaction_type.value,
                        txn.quantity,
                        txn.price,
                        txn.fees,
                        txn.total_amount,
                        txn.date.isoformat(),
                        txn.asset.currency,
                        txn.notes or ''
                    ])

        except OSError as e:
            raise StorageError(
                "Failed to export portfolio",
                details={"portfolio_name": portfolio.name, "output_dir": str(output_path)},
                cause=e
            )

        logger.info(
            "portfolio_exported_to_csv",
            portfolio_name=portfolio.name,
            holdings_file=str(holdings_file),
            transactions_file=str(transactions_file)
        )

        return {
            "holdings": str(holdings_file),
            "transactions": str(transactions_file)
        }

    def import_transactions_from_csv(self, transactions_file: str) -> List[TransactionInput]:
        """
        Read transaction inputs from a CSV file.

        Expects at least the columns symbol, type, quantity, price and date
        (fees and notes optional), as written by export_to_csv(). Rows are
        returned unvalidated; feed them through add_transaction() or
        PortfolioManager.record_transaction() to replay them.

        Example:
            >>> for item in storage.import_transactions_from_csv("trades.csv"):
            ...     manager.record_transaction(item)
        """
        try:
            with open(transactions_file, 'r', newline='') as f:
                reader = csv.DictReader(f)
                inputs = [
                    TransactionInput(
                        symbol=row.get('symbol'),
                        type=row.get('type') or '',
                        quantity=row.get('quantity'),
                        price=row.get('price'),
                        date=row.get('date'),
                        fees=row.get('fees') or None,
                        notes=row.get('notes') or None,
                    )
                    for row in reader
                ]
        except OSError as e:
            raise StorageError(
                "Failed to read transactions CSV",
                details={"path": transactions_file},
                cause=e
            )

        logger.info(
            "transactions_imported_from_csv",
            path=transactions_file,
            transactions=len(inputs)
        )
        return inputs
