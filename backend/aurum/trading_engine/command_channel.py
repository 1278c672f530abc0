"""
Execution command channel

At-least-once delivery of TradeCommands to the execution venue. A command is
committed PENDING before it is sent, keyed by (correlation_id, action), so a
redelivery after a crash or timeout carries the same identity and the venue
can dedupe it. The command only leaves PENDING on a venue response:
ACKNOWLEDGED with the venue ticket, or FAILED once attempts are exhausted.
An OPEN refused at shutdown is FAILED without being sent; a refused CLOSE
stays PENDING.

The acknowledgment and any ledger changes that depend on it (the new Trade
for an OPEN, the closure for a CLOSE) are committed together.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.config import settings
from aurum.constants import CommandAction, CommandStatus
from aurum.exceptions import PersistenceError, VenueDispatchError
from aurum.exchange_clients.base import ExecutionVenue, VenueResponse
from aurum.models import TradeCommand
from aurum.services.shutdown_manager import ShutdownInProgress, ShutdownManager, shutdown_manager
from aurum.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

AckHook = Callable[[TradeCommand, VenueResponse], Union[None, Awaitable[None]]]

# Fields a redelivered command may refresh before it is sent again
_REFRESHABLE_FIELDS = ("exit_price", "close_reason", "stop_loss", "take_profit")


@dataclass
class DispatchOutcome:
    command: TradeCommand
    acknowledged: bool
    duplicate: bool = False  # Already ACKNOWLEDGED, nothing was sent
    attempts: int = 0
    fill_price: Optional[float] = None


async def get_command(db: AsyncSession, correlation_id: str, action: str) -> Optional[TradeCommand]:
    query = select(TradeCommand).where(
        TradeCommand.correlation_id == correlation_id,
        TradeCommand.action == action,
    )
    result = await db.execute(query)
    return result.scalars().first()


async def get_commands_by_status(
    db: AsyncSession,
    account_id: int,
    status: CommandStatus,
    action: Optional[CommandAction] = None,
) -> List[TradeCommand]:
    query = select(TradeCommand).where(
        TradeCommand.account_id == account_id,
        TradeCommand.status == status.value,
    )
    if action is not None:
        query = query.where(TradeCommand.action == action.value)
    result = await db.execute(query.order_by(TradeCommand.created_at, TradeCommand.id))
    return list(result.scalars().all())


async def commit_or_raise(db: AsyncSession, what: str):
    """Commit the session; any database failure rolls back and becomes PersistenceError."""
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Ledger write failed ({what}): {e}")
        raise PersistenceError(f"Ledger write failed ({what}): {e}")


class CommandChannel:
    """
    Delivers trade commands to one execution venue.

    Usage:
        channel = CommandChannel(venue)
        command = await channel.create_command(db, CommandAction.CLOSE, trade.id, ...)
        outcome = await channel.dispatch(db, command, on_acknowledged=apply_close)
    """

    def __init__(
        self,
        venue: ExecutionVenue,
        ack_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        shutdown: Optional[ShutdownManager] = None,
    ):
        self.venue = venue
        self.ack_timeout = ack_timeout if ack_timeout is not None else settings.command_ack_timeout_seconds
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.command_max_attempts)
        self.backoff = backoff if backoff is not None else settings.command_retry_backoff_seconds
        self.shutdown = shutdown or shutdown_manager

    async def create_command(
        self,
        db: AsyncSession,
        action: CommandAction,
        correlation_id: str,
        account_id: int,
        symbol: str,
        side: str,
        volume: float,
        **fields: Any,
    ) -> TradeCommand:
        """
        Create and commit a PENDING command, or return the existing one.

        The same (correlation_id, action) is never created twice. A FAILED
        command is re-armed to PENDING with any refreshed fields (for example
        the new exit price of a retried close).
        """
        existing = await get_command(db, correlation_id, action.value)
        if existing is not None:
            if existing.status == CommandStatus.FAILED.value:
                for name in _REFRESHABLE_FIELDS:
                    if name in fields:
                        setattr(existing, name, fields[name])
                existing.status = CommandStatus.PENDING.value
                existing.error_message = None
                await commit_or_raise(db, f"re-arm {action.value} {correlation_id}")
                logger.info(f"Re-armed FAILED {action.value} command {correlation_id}")
            return existing

        command = TradeCommand(
            correlation_id=correlation_id,
            account_id=account_id,
            action=action.value,
            status=CommandStatus.PENDING.value,
            symbol=symbol,
            side=side,
            volume=volume,
            attempts=0,
            **fields,
        )
        db.add(command)
        try:
            await db.commit()
        except IntegrityError:
            # Created concurrently by another writer
            await db.rollback()
            existing = await get_command(db, correlation_id, action.value)
            if existing is None:
                raise PersistenceError(f"Could not create {action.value} command {correlation_id}")
            return existing
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError(f"Could not create {action.value} command {correlation_id}: {e}")

        logger.info(f"Created PENDING {action.value} command {correlation_id} ({side} {volume} {symbol})")
        return command

    async def _submit_once(self, command: TradeCommand) -> VenueResponse:
        return await asyncio.wait_for(self.venue.submit(command), timeout=self.ack_timeout)

    async def dispatch(
        self,
        db: AsyncSession,
        command: TradeCommand,
        retry_safe: bool = True,
        on_acknowledged: Optional[AckHook] = None,
    ) -> DispatchOutcome:
        """
        Deliver a command and record the venue's answer.

        Retries timeouts and transport failures up to max_attempts when
        retry_safe; an explicit rejection or a 4xx is final. on_acknowledged
        runs before the acknowledgment commit so its ledger changes land in
        the same transaction.

        Raises:
            VenueDispatchError: not acknowledged (command is FAILED; a CLOSE
                refused by shutdown stays PENDING for redelivery)
            PersistenceError: the acknowledgment could not be committed
        """
        correlation_id = command.correlation_id
        action = command.action

        if command.status == CommandStatus.ACKNOWLEDGED.value:
            logger.info(f"{action} {correlation_id} already acknowledged, skipping redelivery")
            return DispatchOutcome(command=command, acknowledged=True, duplicate=True, attempts=command.attempts or 0)

        allowed = self.max_attempts if retry_safe else 1
        response: Optional[VenueResponse] = None
        last_error = None
        attempts = 0

        try:
            async with self.shutdown.dispatch_in_flight(action, correlation_id):
                while attempts < allowed:
                    attempts += 1
                    command.attempts = (command.attempts or 0) + 1
                    try:
                        result = await self._submit_once(command)
                    except asyncio.TimeoutError:
                        last_error = f"No acknowledgment within {self.ack_timeout}s"
                    except ValueError as e:
                        last_error = str(e)
                        break
                    except (ConnectionError, RuntimeError) as e:
                        last_error = str(e)
                    else:
                        if result.ok:
                            response = result
                        else:
                            last_error = result.error or "Rejected by venue"
                        break

                    logger.warning(f"{action} {correlation_id} attempt {attempts}/{allowed} failed: {last_error}")
                    if attempts < allowed:
                        await asyncio.sleep(self.backoff * attempts)
        except ShutdownInProgress as e:
            if action == CommandAction.OPEN.value:
                # Never sent; an entry priced from this cycle's snapshot must not be replayed later
                command.status = CommandStatus.FAILED.value
                command.error_message = str(e)
                await commit_or_raise(db, f"fail {action} {correlation_id}")
            raise VenueDispatchError(str(e), correlation_id=correlation_id, attempts=0)

        if response is not None:
            command.status = CommandStatus.ACKNOWLEDGED.value
            command.ticket_id = response.ticket_id or command.ticket_id
            command.acknowledged_at = utcnow()
            command.error_message = None
            if on_acknowledged is not None:
                hook_result = on_acknowledged(command, response)
                if inspect.isawaitable(hook_result):
                    await hook_result
            await commit_or_raise(db, f"acknowledge {action} {correlation_id}")
            logger.info(
                f"{action} {correlation_id} acknowledged (ticket={response.ticket_id}, "
                f"fill={response.fill_price}, attempts={attempts})"
            )
            return DispatchOutcome(
                command=command,
                acknowledged=True,
                attempts=attempts,
                fill_price=response.fill_price,
            )

        command.status = CommandStatus.FAILED.value
        command.error_message = last_error
        await commit_or_raise(db, f"fail {action} {correlation_id}")
        logger.error(f"{action} {correlation_id} FAILED after {attempts} attempt(s): {last_error}")
        raise VenueDispatchError(
            f"{action} {correlation_id} not acknowledged after {attempts} attempt(s): {last_error}",
            correlation_id=correlation_id,
            attempts=attempts,
        )

    async def apply_acknowledgment(
        self,
        db: AsyncSession,
        correlation_id: str,
        action: CommandAction,
        ticket_id: Optional[str] = None,
    ) -> Optional[TradeCommand]:
        """
        Record a late or duplicate venue acknowledgment.

        Idempotent: an already ACKNOWLEDGED command is returned unchanged.
        Ledger effects (inserting the Trade, applying a closure) are left to
        reconciliation at the start of the next cycle.
        """
        command = await get_command(db, correlation_id, action.value)
        if command is None:
            logger.warning(f"Acknowledgment for unknown {action.value} command {correlation_id}")
            return None

        if command.status == CommandStatus.ACKNOWLEDGED.value:
            return command

        command.status = CommandStatus.ACKNOWLEDGED.value
        command.ticket_id = ticket_id or command.ticket_id
        command.acknowledged_at = utcnow()
        command.error_message = None
        await commit_or_raise(db, f"late acknowledge {action.value} {correlation_id}")
        logger.info(f"Applied late acknowledgment for {action.value} {correlation_id} (ticket={ticket_id})")
        return command
