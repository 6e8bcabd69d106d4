"""
Command Queue Service

Enqueue side of the actuation queue, the pending-command guard, and the
status transitions reported by the external executor.
"""

from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Set
from sqlalchemy.orm import Session
from sqlalchemy import and_

from ..commands.models import CommandStatus, DeviceCommand, OUTSTANDING_STATUSES, command_payload
from ..core.exceptions import InvalidTransition, NotFound
from ..db.database import store_errors
from ..models.command_queue import CommandQueueEntry


class PendingCommandGuard:
    """
    Derived "has a command in flight" state.

    Always evaluated against command_queue at query time; nothing is cached.
    """

    @staticmethod
    def has_pending(db: Session, device: str) -> bool:
        with store_errors("checking pending commands"):
            query = db.query(CommandQueueEntry.id).filter(
                and_(
                    CommandQueueEntry.device == device,
                    CommandQueueEntry.status.in_(OUTSTANDING_STATUSES)
                )
            )
            return db.query(query.exists()).scalar()

    @staticmethod
    def pending_devices(db: Session) -> Set[str]:
        """All device ids with a pending/processing entry, in one query"""
        with store_errors("listing pending devices"):
            rows = db.query(CommandQueueEntry.device).filter(
                CommandQueueEntry.status.in_(OUTSTANDING_STATUSES)
            ).distinct().all()
            return {row.device for row in rows}


class CommandQueueService:
    """Service for command queue operations"""

    # Allowed source statuses per target status
    TRANSITIONS = {
        CommandStatus.PROCESSING: (CommandStatus.PENDING,),
        CommandStatus.DONE: (CommandStatus.PROCESSING,),
        CommandStatus.FAILED: (CommandStatus.PENDING, CommandStatus.PROCESSING),
    }

    @staticmethod
    def enqueue(
        db: Session,
        device: str,
        model: Optional[str],
        brand: str,
        command: DeviceCommand
    ) -> int:
        """
        Add a pending command for a device

        Flushes but does not commit; the caller owns the transaction so the
        preceding guard check and this insert commit together.

        Args:
            db: Database session
            device: Target device id
            model: Device model
            brand: Originating vendor
            command: TurnCommand or BrightnessCommand

        Returns:
            Command queue ID
        """
        queue_entry = CommandQueueEntry(
            device=device,
            model=model,
            brand=brand,
            command=command_payload(command),
            status=CommandStatus.PENDING.value
        )

        with store_errors(f"enqueuing command for {device}"):
            db.add(queue_entry)
            db.flush()

        return queue_entry.id

    @staticmethod
    def list_pending(db: Session, device: str) -> List[CommandQueueEntry]:
        """Pending/processing entries for one device, oldest first"""
        with store_errors(f"listing commands for {device}"):
            return db.query(CommandQueueEntry).filter(
                and_(
                    CommandQueueEntry.device == device,
                    CommandQueueEntry.status.in_(OUTSTANDING_STATUSES)
                )
            ).order_by(CommandQueueEntry.created_at.asc(), CommandQueueEntry.id.asc()).all()

    @staticmethod
    def claim_next(db: Session) -> Optional[CommandQueueEntry]:
        """
        Hand the oldest pending command to an executor (marks it processing)
        """
        with store_errors("claiming next command"):
            cmd = db.query(CommandQueueEntry).filter(
                CommandQueueEntry.status == CommandStatus.PENDING.value
            ).order_by(
                CommandQueueEntry.created_at.asc(),
                CommandQueueEntry.id.asc()
            ).with_for_update(skip_locked=True).first()

            if cmd:
                cmd.status = CommandStatus.PROCESSING.value
                cmd.last_attempt_at = datetime.now()
                db.commit()

        return cmd

    @staticmethod
    def mark_processing(db: Session, command_id: int) -> CommandQueueEntry:
        return CommandQueueService._transition(db, command_id, CommandStatus.PROCESSING)

    @staticmethod
    def mark_done(db: Session, command_id: int) -> CommandQueueEntry:
        return CommandQueueService._transition(db, command_id, CommandStatus.DONE)

    @staticmethod
    def mark_failed(db: Session, command_id: int, error_message: str) -> CommandQueueEntry:
        """Terminal failure; retries are the executor's business"""
        return CommandQueueService._transition(
            db, command_id, CommandStatus.FAILED, error_message=error_message
        )

    @staticmethod
    def _transition(
        db: Session,
        command_id: int,
        target: CommandStatus,
        error_message: Optional[str] = None
    ) -> CommandQueueEntry:
        with store_errors(f"updating command {command_id}"):
            cmd = db.query(CommandQueueEntry).filter(CommandQueueEntry.id == command_id).first()
            if not cmd:
                raise NotFound(f"Command {command_id} not found")

            allowed = [s.value for s in CommandQueueService.TRANSITIONS[target]]
            if cmd.status not in allowed:
                raise InvalidTransition(
                    f"Command {command_id} cannot move from '{cmd.status}' to '{target.value}'"
                )

            cmd.status = target.value
            if target == CommandStatus.PROCESSING:
                cmd.last_attempt_at = datetime.now()
            if target in (CommandStatus.DONE, CommandStatus.FAILED):
                cmd.completed_at = datetime.now()
            if error_message is not None:
                cmd.error_message = error_message
            db.commit()

        return cmd

    @staticmethod
    def get_queue_metrics(db: Session) -> Dict[str, Any]:
        """Get queue health metrics"""
        now = datetime.now()
        one_hour_ago = now - timedelta(hours=1)

        with store_errors("computing queue metrics"):
            counts = {
                status.value: db.query(CommandQueueEntry).filter(
                    CommandQueueEntry.status == status.value
                ).count()
                for status in (CommandStatus.PENDING, CommandStatus.PROCESSING)
            }

            failed_last_hour = db.query(CommandQueueEntry).filter(
                and_(
                    CommandQueueEntry.status == CommandStatus.FAILED.value,
                    CommandQueueEntry.completed_at >= one_hour_ago
                )
            ).count()

            # Processing for more than 5 minutes
            stuck_threshold = now - timedelta(minutes=5)
            stuck_count = db.query(CommandQueueEntry).filter(
                and_(
                    CommandQueueEntry.status == CommandStatus.PROCESSING.value,
                    CommandQueueEntry.last_attempt_at < stuck_threshold
                )
            ).count()

        return {
            "pending_count": counts[CommandStatus.PENDING.value],
            "processing_count": counts[CommandStatus.PROCESSING.value],
            "failed_last_hour": failed_last_hour,
            "stuck_commands": stuck_count,
            "healthy": stuck_count == 0
        }
