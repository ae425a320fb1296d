# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Transaction Logger

Single responsibility: Record per-package install results (append-only JSONL)
"""

import json
import logging
import uuid
from pathlib import Path
from typing import List, Dict, Any, Optional
from datetime import datetime, UTC

from package_installer.models.registry_models import PackageResult

logger = logging.getLogger(__name__)


def new_transaction_id() -> str:
    return f"txn-{uuid.uuid4().hex[:12]}"


class TransactionLogger:
    """Appends install results to a JSONL file"""

    def __init__(self, log_file: Path):
        """
        Initialize transaction logger.

        Args:
            log_file: Path to transactions.jsonl
        """
        self.log_file = Path(log_file)

        # Ensure log file exists
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        if not self.log_file.exists():
            self.log_file.touch()

    def log(self, result: PackageResult, run_id: str) -> Dict[str, Any]:
        """
        Append one package result to the log.

        Args:
            result: Result to record
            run_id: Run the result belongs to

        Returns:
            The record as written
        """
        record = {
            "id": new_transaction_id(),
            "run_id": run_id,
            "timestamp": datetime.now(UTC).isoformat(),
            **result.model_dump(mode="json")
        }
        with open(self.log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
        return record

    def _read(self) -> List[Dict[str, Any]]:
        if not self.log_file.exists():
            return []

        transactions = []
        with open(self.log_file, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    transactions.append(json.loads(line))
                except ValueError as e:
                    logger.error(f"Failed to parse transaction log line: {e}")
        return transactions

    def list_transactions(self, limit: int = 50) -> List[Dict[str, Any]]:
        """
        List recent transactions from log.

        Args:
            limit: Maximum number of transactions to return

        Returns:
            List of transaction records (most recent first)
        """
        transactions = self._read()
        if limit <= 0:
            return []
        return list(reversed(transactions[-limit:]))

    def get_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a specific transaction by ID.

        Args:
            transaction_id: Transaction ID

        Returns:
            Transaction record or None if not found
        """
        for txn in self._read():
            if txn.get("id") == transaction_id:
                return txn
        return None
