"""
Submission service.

Two entry points for user-submitted transaction hashes:

* ``process_now`` verifies and records a hash synchronously (``POST /api/submit``)
* ``enqueue`` validates a hash and queues it for the batch run (``POST /api/sdk/submit``)
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select

from sdk_batch.core.config import settings
from sdk_batch.core.database import get_async_session
from sdk_batch.core.exceptions import (
    DuplicateSubmissionError,
    ProjectNotFoundError,
    QueueEntryNotFoundError,
    UnregisteredAppError,
    ValidationError,
)
from sdk_batch.models.batch_run import BatchRun
from sdk_batch.models.transaction import TransactionRecord
from sdk_batch.services.batch.blockchain import ChainInspector, EligibilityValidator, decode_app_id
from sdk_batch.services.batch.database import BatchRunRepository, PersistenceWriter, QueueRepository
from sdk_batch.services.batch.metrics import calculate_metrics, format_native
from sdk_batch.services.batch.transactions import LedgerMutator
from sdk_batch.services.ledger_client import LedgerClient, get_ledger_client


logger = structlog.get_logger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")

GWEI = 10 ** 9


def validate_tx_hash(tx_hash: Optional[str]) -> str:
    """Check the hash format and return it lower-cased."""
    if not tx_hash:
        raise ValidationError("Missing required field: transaction_hash")
    if not TX_HASH_PATTERN.match(tx_hash):
        raise ValidationError("Invalid transaction hash format", {"transaction_hash": tx_hash})
    return tx_hash.lower()


def epoch_to_datetime(ts: int) -> datetime:
    """UTC datetime for a ledger timestamp, clamped to ``datetime.max`` for open-ended dates."""
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return datetime.max.replace(tzinfo=timezone.utc)


class SubmissionService:
    """Synchronous processing and queue intake for submitted hashes."""

    def __init__(self, ledger: Optional[LedgerClient] = None):
        self.ledger = ledger
        self.queue = QueueRepository()
        self.runs = BatchRunRepository()
        self.writer = PersistenceWriter(self.queue)
        self.logger = logger.bind(service="submission_service")

    async def initialize(self) -> None:
        if self.ledger is None:
            self.ledger = await get_ledger_client()
        self.inspector = ChainInspector(self.ledger)
        self.validator = EligibilityValidator(self.ledger)
        self.mutator = LedgerMutator(self.ledger)

    async def process_now(self, tx_hash: str) -> Dict[str, Any]:
        """
        Verify, record on the ledger and mirror one transaction.

        Raises the tagged processing errors unchanged; the API layer maps
        them to HTTP statuses.
        """
        tx_hash = validate_tx_hash(tx_hash)
        log = self.logger.bind(tx_hash=tx_hash)

        existing = await self._find_record(tx_hash)
        if existing is not None:
            log.info("Transaction already processed")
            return {
                "already_processed": True,
                "message": "Transaction already processed",
                "transaction": existing,
            }

        transaction, receipt = await self.inspector.inspect(tx_hash)
        app_id = decode_app_id(transaction.input_data, tx_hash)
        campaign_ids = await self.validator.validate(app_id)
        metrics = calculate_metrics(transaction, receipt, settings.min_reward_wei)

        project_id = await self.queue.resolve_project_id(app_id)
        if project_id is None:
            raise ProjectNotFoundError(app_id)

        log = log.bind(app_id=app_id)
        log.info(
            "Processing transaction on-chain",
            gas_used=metrics.gas_used,
            gas_price=metrics.gas_price,
            value=metrics.transaction_value,
            campaigns_to_update=len(campaign_ids),
        )

        confirmation = await self.mutator.submit(app_id, tx_hash, metrics)
        user_address = transaction.from_address.lower()

        # Mirrors are best-effort once the ledger has confirmed
        try:
            await self.writer.insert_records(
                transaction, receipt, metrics, app_id, project_id, campaign_ids, confirmation
            )
        except Exception as e:
            log.error("Failed to save transaction records, on-chain processing succeeded", error=str(e))

        is_new_user = False
        try:
            total = await self.writer.upsert_user_stats(
                project_id,
                user_address,
                volume=metrics.transaction_value,
                fees=metrics.fee_generated,
                rewards=metrics.reward_estimate,
            )
            is_new_user = total == 1
        except Exception as e:
            log.error("Failed to update user stats", error=str(e))

        try:
            await self.writer.refresh_campaign_counters(campaign_ids)
        except Exception as e:
            log.warning("Failed to refresh campaign counters", error=str(e))

        await self._complete_queued_row(tx_hash, confirmation.process_tx_hash, log)

        campaign_metrics = await self.campaign_metrics(app_id, campaign_ids)

        active = [c for c in campaign_metrics if c["is_campaign_active"]]
        ended = [c for c in campaign_metrics if c["campaign_ended"]]

        log.info(
            "Campaign status check",
            total_registered_campaigns=len(campaign_ids),
            active_campaigns=len(active),
            ended_campaigns=len(ended),
        )

        if ended:
            message = (
                f"Transaction processed successfully. Metrics updated for {len(active)} active "
                f"campaign(s). {len(ended)} campaign(s) have ended but transaction was still recorded."
            )
        else:
            message = "Transaction processed successfully"

        symbol = settings.native_symbol
        return {
            "already_processed": False,
            "message": message,
            "transaction_hash": tx_hash,
            "app_id": app_id,
            "processed_at": datetime.now(timezone.utc),
            "process_tx_hash": confirmation.process_tx_hash,
            "user_tracking": {
                "user_address": user_address,
                "is_new_unique_user": is_new_user,
            },
            "metrics": {
                "gas_used": str(metrics.gas_used),
                "gas_price": f"{metrics.gas_price / GWEI:g} gwei",
                "fee_generated": format_native(metrics.fee_generated, symbol),
                "transaction_value": format_native(metrics.transaction_value, symbol),
                "estimated_reward": format_native(metrics.reward_estimate, symbol),
            },
            "campaign_status": {
                "total_registered_campaigns": len(campaign_ids),
                "active_campaigns": len(active),
                "ended_campaigns": len(ended),
                "active_campaign_ids": [c["campaign_id"] for c in active],
                "ended_campaign_ids": [c["campaign_id"] for c in ended],
            },
            "campaign_metrics": campaign_metrics,
        }

    async def campaign_metrics(self, app_id: str, campaign_ids: List[int]) -> List[Dict[str, Any]]:
        """Ledger metrics and activity flags for each registered campaign."""
        now_ts = int(time.time())
        results = []

        for campaign_id in campaign_ids:
            try:
                campaign = await self.ledger.get_campaign(campaign_id)
                metrics = await self.ledger.get_app_campaign_metrics(app_id, campaign_id)
            except Exception as e:
                self.logger.warning(
                    "Failed to read campaign status",
                    campaign_id=campaign_id,
                    error=str(e),
                )
                continue

            is_active = campaign.is_running(now_ts)

            results.append({
                "campaign_id": campaign_id,
                "total_fees": str(metrics.total_fees),
                "total_volume": str(metrics.total_volume),
                "tx_count": metrics.tx_count,
                "estimated_reward": format_native(metrics.estimated_reward, settings.native_symbol),
                "is_campaign_active": is_active,
                "campaign_ended": campaign.active and not is_active,
                "campaign_start_date": epoch_to_datetime(campaign.start_date),
                "campaign_end_date": epoch_to_datetime(campaign.end_date),
            })

        return results

    async def get_processed_status(self, tx_hash: str) -> Dict[str, Any]:
        """Ledger processed flag for a hash."""
        tx_hash = validate_tx_hash(tx_hash)
        is_processed = await self.ledger.is_processed(tx_hash)
        return {
            "transaction_hash": tx_hash,
            "is_processed": is_processed,
            "status": "processed" if is_processed else "pending",
        }

    async def enqueue(
        self,
        tx_hash: str,
        app_id: Optional[str] = None,
        user_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Validate a hash against the ledger and queue it as ``pending``."""
        tx_hash = validate_tx_hash(tx_hash)
        log = self.logger.bind(tx_hash=tx_hash)

        existing = await self.queue.get_by_hash(tx_hash)
        if existing is not None:
            raise DuplicateSubmissionError(tx_hash, existing.status.value)

        transaction, _receipt = await self.inspector.inspect(tx_hash)

        final_app_id = app_id or decode_app_id(transaction.input_data, tx_hash)
        if not await self.ledger.is_app_registered(final_app_id):
            # Intake rejects outright; the batch run would retry
            raise UnregisteredAppError(final_app_id)

        project_id = await self.queue.resolve_project_id(final_app_id)
        if project_id is None:
            raise ProjectNotFoundError(final_app_id)

        final_user_address = (user_address or transaction.from_address).lower()

        row = await self.queue.enqueue(
            tx_hash,
            app_id=final_app_id,
            project_id=project_id,
            user_address=final_user_address,
            network=settings.network,
            max_retries=settings.default_max_retries,
        )

        log.info(
            "SDK transaction submitted for batch processing",
            app_id=final_app_id,
            user_address=final_user_address,
            project_id=project_id,
        )

        return {
            "id": row.id,
            "transaction_hash": tx_hash,
            "app_id": final_app_id,
            "user_address": final_user_address,
            "status": row.status.value,
            "estimated_processing_time": "Next batch run",
            "submitted_at": row.submitted_at,
        }

    async def get_queue_status(self, tx_hash: str) -> Dict[str, Any]:
        """Queue row status with the owning batch run, if any."""
        tx_hash = validate_tx_hash(tx_hash)
        row = await self.queue.get_by_hash(tx_hash)
        if row is None:
            raise QueueEntryNotFoundError(tx_hash)

        batch_info = None
        if row.batch_id is not None:
            run = await self.runs.get(row.batch_id)
            if run is not None:
                batch_info = batch_run_summary(run)

        return {
            "transaction_hash": row.transaction_hash,
            "app_id": row.app_id,
            "user_address": row.user_address,
            "status": row.status.value,
            "submitted_at": row.submitted_at,
            "processed_at": row.processed_at,
            "batch_id": row.batch_id,
            "retry_count": row.retry_count,
            "max_retries": row.max_retries,
            "error_message": row.error_message,
            "process_tx_hash": row.process_tx_hash,
            "batch_info": batch_info,
        }

    async def list_batch_runs(self, limit: int = 20) -> List[Dict[str, Any]]:
        runs = await self.runs.list_recent(limit)
        return [batch_run_summary(run) for run in runs]

    async def _find_record(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        async with get_async_session() as db:
            result = await db.execute(
                select(TransactionRecord)
                .where(TransactionRecord.tx_hash == tx_hash)
                .order_by(TransactionRecord.id)
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return record.to_dict() if record else None

    async def _complete_queued_row(self, tx_hash: str, process_tx_hash: str, log) -> None:
        """A hash processed here may also sit in the queue; close it out."""
        try:
            row = await self.queue.get_by_hash(tx_hash)
            if row is not None and not row.is_terminal:
                await self.queue.mark_completed(row.id, process_tx_hash)
                log.info("Queued row completed by direct submission", row_id=row.id)
        except Exception as e:
            log.warning("Failed to complete queued row", error=str(e))


def batch_run_summary(run: BatchRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "run_date": run.run_date,
        "status": run.status.value,
        "triggered_by": run.triggered_by,
        "total_transactions": run.total_transactions,
        "successful_transactions": run.successful_transactions,
        "failed_transactions": run.failed_transactions,
        "skipped_transactions": run.skipped_transactions,
        "total_gas_used": str(int(run.total_gas_used or 0)),
        "total_fees_generated": str(int(run.total_fees_generated or 0)),
        "total_rewards_calculated": str(int(run.total_rewards_calculated or 0)),
        "started_at": run.started_at,
        "completed_at": run.completed_at,
        "error_summary": run.error_summary,
    }


# Global service instance
_service: Optional[SubmissionService] = None


async def get_submission_service() -> SubmissionService:
    """Get or create the global submission service."""
    global _service
    if _service is None:
        service = SubmissionService()
        await service.initialize()
        _service = service
    return _service


def reset_submission_service() -> None:
    global _service
    _service = None
