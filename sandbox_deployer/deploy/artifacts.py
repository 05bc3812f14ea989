"""
Artifact Reconciler

Turns the broadcast output of a deployment run into one ordered record per
chain.

Layout consumed (deployment tool conventions):

    <working_directory>/broadcast/<Script>/<chainId>/run-latest.json
    <working_directory>/build/**/<Contract>.json      (optional, "abi" arrays)

Every matching run file is merged in traversal order. Receipts are then
sorted by block number and transactions are reordered so that
transactions[i] and receipts[i] describe the same on-chain event.
"""

import json
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from sandbox_deployer.deploy.decoder import EventDecoder
from sandbox_deployer.exceptions import ReconciliationError
from sandbox_deployer.models import BroadcastRecord, Receipt, Transaction

logger = structlog.get_logger(__name__)

BROADCAST_DIR = "broadcast"
BUILD_DIR = "build"
RUN_LATEST = "run-latest.json"


@dataclass(frozen=True)
class FileEntry:
    """A file found while walking an artifact tree."""

    path: Path
    name: str
    parts: tuple[str, ...]  # path segments relative to the walk root


def walk_files(root: str | Path) -> Iterator[FileEntry]:
    """
    Depth-first traversal of every regular file under root.

    Entries of a directory are visited in sorted name order, so the same
    tree always yields the same sequence. Each call returns a fresh
    generator. Symlinked directories are not followed.
    """

    def _walk(directory: Path, parts: tuple[str, ...]) -> Iterator[FileEntry]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("artifact_directory_unreadable", path=str(directory), error=str(e))
            return

        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                yield from _walk(Path(entry.path), parts + (entry.name,))
            elif entry.is_file():
                yield FileEntry(path=Path(entry.path), name=entry.name, parts=parts + (entry.name,))

    yield from _walk(Path(root), ())


def is_chain_run_file(entry: FileEntry, chain_id: int) -> bool:
    """A run-latest.json with a directory segment equal to the chain id."""
    return entry.name == RUN_LATEST and str(chain_id) in entry.parts[:-1]


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ReconciliationError(str(path), str(e)) from e


def load_run_file(path: Path) -> BroadcastRecord:
    """
    Parse one run file into a partial broadcast record.

    Raises:
        ReconciliationError: If the file is unreadable or malformed
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ReconciliationError(str(path), "top-level JSON value is not an object")

    try:
        return BroadcastRecord.model_validate({
            "transactions": data.get("transactions") or [],
            "receipts": data.get("receipts") or [],
            "libraries": data.get("libraries") or [],
        })
    except ValidationError as e:
        raise ReconciliationError(str(path), f"invalid broadcast structure: {e}") from e


def sort_receipts(receipts: list[Receipt]) -> list[Receipt]:
    """Ascending by numeric block number; ties keep their input order."""
    return sorted(receipts, key=lambda r: r.block_number_value)


def align_transactions(transactions: list[Transaction], receipts: list[Receipt]) -> list[Transaction]:
    """
    Reorder transactions by the position of their receipt.

    A transaction without a matching receipt gets position -1 and therefore
    sorts ahead of every matched transaction.
    """
    positions: dict[str, int] = {}
    for index, receipt in enumerate(receipts):
        if receipt.transaction_hash:
            positions.setdefault(receipt.transaction_hash.lower(), index)

    def _position(tx: Transaction) -> int:
        if not tx.hash:
            return -1
        return positions.get(tx.hash.lower(), -1)

    return sorted(transactions, key=_position)


def load_event_abis(working_directory: str | Path) -> list[dict[str, Any]]:
    """
    Collect event entries from the ABIs of the build tree.

    Unreadable or non-JSON build files are skipped individually.
    """
    build_dir = Path(working_directory) / BUILD_DIR
    if not build_dir.is_dir():
        return []

    events: list[dict[str, Any]] = []
    for entry in walk_files(build_dir):
        if not entry.name.endswith(".json"):
            continue
        try:
            data = _read_json(entry.path)
        except ReconciliationError as e:
            logger.warning("build_artifact_skipped", path=e.path, error=e.reason)
            continue
        abi = data.get("abi") if isinstance(data, dict) else None
        if not isinstance(abi, list):
            continue
        events.extend(item for item in abi if isinstance(item, dict) and item.get("type") == "event")

    logger.debug("event_abis_loaded", count=len(events), build_dir=str(build_dir))
    return events


def reconcile(
    chain_id: int,
    working_directory: str | Path,
    event_abis: list[dict[str, Any]] | None = None,
) -> BroadcastRecord | None:
    """
    Merge, order and correlate the broadcast artifacts of one chain.

    Args:
        chain_id: Chain whose run files are collected
        working_directory: Directory holding the broadcast tree
        event_abis: Event ABI entries used to decode receipt logs

    Returns:
        The merged BroadcastRecord, or None when there is no broadcast
        directory or no run file for the chain
    """
    broadcast_dir = Path(working_directory) / BROADCAST_DIR
    if not broadcast_dir.is_dir():
        logger.info("broadcast_directory_missing", chain_id=chain_id, path=str(broadcast_dir))
        return None

    transactions: list[Transaction] = []
    receipts: list[Receipt] = []
    libraries: list[str] = []
    merged_files = 0

    for entry in walk_files(broadcast_dir):
        if not is_chain_run_file(entry, chain_id):
            continue
        try:
            run = load_run_file(entry.path)
        except ReconciliationError as e:
            logger.warning("broadcast_file_skipped", chain_id=chain_id, path=e.path, error=e.reason)
            continue

        transactions.extend(run.transactions)
        receipts.extend(run.receipts)
        libraries.extend(run.libraries)
        merged_files += 1
        logger.debug(
            "broadcast_file_merged",
            chain_id=chain_id,
            path=str(entry.path),
            transactions=len(run.transactions),
            receipts=len(run.receipts),
        )

    if merged_files == 0:
        logger.info("broadcast_files_not_found", chain_id=chain_id)
        return None

    if receipts:
        receipts = sort_receipts(receipts)
        transactions = align_transactions(transactions, receipts)

    decoder = EventDecoder(event_abis)
    for receipt in receipts:
        receipt.decoded_logs = [decoder.decode(log) for log in receipt.logs]

    logger.info(
        "broadcast_reconciled",
        chain_id=chain_id,
        files=merged_files,
        transactions=len(transactions),
        receipts=len(receipts),
        libraries=len(libraries),
    )
    return BroadcastRecord(transactions=transactions, receipts=receipts, libraries=libraries)
