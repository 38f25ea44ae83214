"""
Durable ordered log of local mutations not yet confirmed by the remote.

Ordering is load-bearing: a CompleteTask for a task created earlier in
the queue must never be sent before its CreateTask.

File format (``commands.json``):
    {
        "version": 1,
        "commands": [{"temp_id": "...", "type": "item_add", ...}]
    }
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tuido.core.errors import CorruptState
from tuido.core.models import Command, CommandStatus, CommandType
from tuido.core.store.atomic import quarantine, read_json, write_json_atomic

logger = logging.getLogger(__name__)

QUEUE_VERSION = 1


class CommandQueue:
    """
    Ordered, durable queue of commands.

    Commands move Pending -> InFlight -> Committed | Rejected. Committed
    commands are pruned on the next successful save; Rejected commands stay
    until the user dismisses them.

    Example:
        >>> queue = CommandQueue.in_data_dir(data_dir)
        >>> queue.load()
        >>> command_id = queue.enqueue(Command.create_task("Buy milk"))
        >>> batch = queue.next_batch(100)
    """

    FILENAME = "commands.json"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._commands: list[Command] = []

    @classmethod
    def in_data_dir(cls, data_dir: Path) -> CommandQueue:
        """Create a queue backed by ``<data_dir>/commands.json``."""
        return cls(Path(data_dir) / cls.FILENAME)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> list[Command]:
        """
        Load the queue from disk.

        Commands persisted as InFlight belong to a pass that never finished
        and go back to Pending.

        Raises:
            CorruptState: If the file is unreadable or violates the schema
        """
        data = read_json(self.path)
        commands = [] if data is None else self._parse(data)

        for command in commands:
            if command.status == CommandStatus.IN_FLIGHT:
                logger.info("Requeueing interrupted command %s", command.temp_id)
                command.status = CommandStatus.PENDING

        with self._lock:
            self._commands = commands
            return self.all()

    def load_or_reset(self) -> bool:
        """
        Load the queue, recovering from corruption.

        Returns:
            True if the queue file was corrupt and had to be reset
        """
        try:
            self.load()
            return False
        except CorruptState as e:
            logger.warning("Command queue is corrupt, queued changes were lost: %s", e)
            quarantine(self.path)
            with self._lock:
                self._commands = []
            return True

    def _parse(self, data: dict[str, Any]) -> list[Command]:
        version = data.get("version", QUEUE_VERSION)
        if version != QUEUE_VERSION:
            raise CorruptState(f"Unsupported command queue version: {version!r}", path=self.path)
        raw_commands = data.get("commands", [])
        if not isinstance(raw_commands, list):
            raise CorruptState("'commands' must be a list", path=self.path)
        try:
            commands = [Command.model_validate(raw) for raw in raw_commands]
        except ValidationError as e:
            raise CorruptState(f"Command queue violates schema: {e}", path=self.path) from e

        seen: set[str] = set()
        for command in commands:
            if command.temp_id in seen:
                raise CorruptState(f"Duplicate command id {command.temp_id}", path=self.path)
            seen.add(command.temp_id)
        return commands

    def save(self) -> None:
        """
        Persist the queue, pruning Committed commands.

        Raises:
            StoreWriteError: If the write failed (queue unchanged on disk)
        """
        with self._lock:
            kept = [c for c in self._commands if c.status != CommandStatus.COMMITTED]
            self._write(kept)

    def _write(self, commands: list[Command]) -> None:
        document = {
            "version": QUEUE_VERSION,
            "commands": [c.model_dump(mode="json") for c in commands],
        }
        write_json_atomic(self.path, document)
        self._commands = commands

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def enqueue(self, command: Command) -> str:
        """
        Append a command to the durable log as Pending.

        Returns:
            The command id (its temp id)
        """
        with self._lock:
            if self._find(command.temp_id) is not None:
                raise ValueError(f"Command {command.temp_id} is already queued")
            command = command.model_copy(
                update={"status": CommandStatus.PENDING, "reason": None}
            )
            self._write([*self._commands, command])
            logger.debug("Enqueued %s command %s", command.type.value, command.temp_id)
            return command.temp_id

    def next_batch(self, max_n: int) -> list[Command]:
        """
        Return the oldest Pending commands, in queue order.

        The batch is the ordered prefix of Pending commands, holding at
        least ``max_n`` of them when that many are queued. It is extended
        past ``max_n`` when needed so that commands referencing a task
        created inside the batch travel in the same request as the create.
        """
        if max_n < 1:
            raise ValueError("max_n must be >= 1")

        with self._lock:
            pending = [c.model_copy() for c in self._commands if c.status == CommandStatus.PENDING]

        if len(pending) <= max_n:
            return pending

        end = max_n
        created = {c.temp_id for c in pending[:end] if c.type == CommandType.CREATE_TASK}
        for index in range(max_n, len(pending)):
            command = pending[index]
            if command.type != CommandType.CREATE_TASK and command.task_ref in created:
                end = index + 1
                # Everything up to here is part of the batch now
                created.update(
                    c.temp_id for c in pending[:end] if c.type == CommandType.CREATE_TASK
                )
        return pending[:end]

    def mark(self, command_id: str, outcome: CommandStatus, reason: str | None = None) -> Command:
        """
        Transition a command's status in memory.

        The change becomes durable with the next :meth:`save`.

        Raises:
            KeyError: If no such command is queued
            ValueError: If the transition is not allowed
        """
        with self._lock:
            command = self._find(command_id)
            if command is None:
                raise KeyError(command_id)
            _check_transition(command.status, outcome)
            command.status = outcome
            command.reason = reason if outcome == CommandStatus.REJECTED else None
            return command.model_copy()

    def mark_many(self, command_ids: Iterable[str], outcome: CommandStatus) -> None:
        with self._lock:
            for command_id in command_ids:
                command = self._find(command_id)
                if command is None or command.status == outcome or command.status.is_terminal:
                    continue
                if outcome in _ALLOWED_TRANSITIONS[command.status]:
                    self.mark(command_id, outcome)

    def commit(self, outcomes: dict[str, tuple[CommandStatus, str | None]]) -> None:
        """
        Apply sync outcomes and persist the pruned queue in one write.

        Works on the queue as it is now, so commands enqueued while the
        sync pass was running are kept. The in-memory queue only changes
        once the file has been written.

        Args:
            outcomes: Map of command id to (status, reason); Committed
                commands are dropped, Pending ones are requeued

        Raises:
            StoreWriteError: If the write failed (queue unchanged)
        """
        with self._lock:
            updated: list[Command] = []
            for command in self._commands:
                if command.temp_id not in outcomes:
                    updated.append(command)
                    continue
                status, reason = outcomes[command.temp_id]
                if status != command.status:
                    _check_transition(command.status, status)
                if status == CommandStatus.COMMITTED:
                    continue
                updated.append(command.model_copy(update={"status": status, "reason": reason}))
            self._write(updated)

    def dismiss(self, command_id: str) -> Command:
        """
        Remove a Rejected command after the user has acknowledged it.

        Raises:
            KeyError: If no such command is queued
            ValueError: If the command is not Rejected
        """
        with self._lock:
            command = self._find(command_id)
            if command is None:
                raise KeyError(command_id)
            if command.status != CommandStatus.REJECTED:
                raise ValueError(f"Only rejected commands can be dismissed ({command.status.value})")
            self._write([c for c in self._commands if c.temp_id != command_id])
            return command

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def _find(self, command_id: str) -> Command | None:
        for command in self._commands:
            if command.temp_id == command_id:
                return command
        return None

    def get(self, command_id: str) -> Command | None:
        with self._lock:
            command = self._find(command_id)
            return command.model_copy() if command else None

    def all(self) -> list[Command]:
        with self._lock:
            return [c.model_copy() for c in self._commands]

    def pending(self) -> list[Command]:
        with self._lock:
            return [c.model_copy() for c in self._commands if c.status == CommandStatus.PENDING]

    def rejected(self) -> list[Command]:
        with self._lock:
            return [c.model_copy() for c in self._commands if c.status == CommandStatus.REJECTED]

    def __len__(self) -> int:
        with self._lock:
            return len(self._commands)


_ALLOWED_TRANSITIONS = {
    CommandStatus.PENDING: {CommandStatus.IN_FLIGHT, CommandStatus.REJECTED},
    CommandStatus.IN_FLIGHT: {
        CommandStatus.PENDING,
        CommandStatus.COMMITTED,
        CommandStatus.REJECTED,
    },
}


def _check_transition(current: CommandStatus, new: CommandStatus) -> None:
    if current.is_terminal:
        raise ValueError(f"Invalid command transition {current.value} -> {new.value} (final)")
    if new not in _ALLOWED_TRANSITIONS[current]:
        raise ValueError(f"Invalid command transition {current.value} -> {new.value}")
