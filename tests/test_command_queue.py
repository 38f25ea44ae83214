"""Tests for the durable command queue."""

import json

import pytest

from tuido.core.errors import CorruptState
from tuido.core.models import Command, CommandStatus
from tuido.core.store import CommandQueue


def reload(queue: CommandQueue) -> CommandQueue:
    fresh = CommandQueue(queue.path)
    fresh.load()
    return fresh


class TestEnqueue:
    """Test suite for CommandQueue.enqueue."""

    def test_enqueue_is_durable(self, queue) -> None:
        """Test that an enqueued command survives a reload."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))

        fresh = reload(queue)

        assert [c.temp_id for c in fresh.all()] == [command_id]
        assert fresh.get(command_id).status == CommandStatus.PENDING

    def test_enqueue_preserves_order(self, queue) -> None:
        """Test that commands keep their insertion order."""
        ids = [queue.enqueue(Command.create_task(f"Task {i}")) for i in range(3)]

        assert [c.temp_id for c in reload(queue).pending()] == ids

    def test_enqueue_duplicate_rejected(self, queue) -> None:
        """Test that the same command id cannot be queued twice."""
        command = Command.create_task("Buy milk")
        queue.enqueue(command)

        with pytest.raises(ValueError, match="already queued"):
            queue.enqueue(command)

    def test_enqueue_resets_status(self, queue) -> None:
        """Test that a command always enters the queue as Pending."""
        command = Command.create_task("Buy milk")
        command.status = CommandStatus.REJECTED

        command_id = queue.enqueue(command)

        assert queue.get(command_id).status == CommandStatus.PENDING


class TestNextBatch:
    """Test suite for CommandQueue.next_batch."""

    def test_returns_oldest_first(self, queue) -> None:
        """Test that the batch is the oldest prefix."""
        ids = [queue.enqueue(Command.create_task(f"Task {i}")) for i in range(5)]

        assert [c.temp_id for c in queue.next_batch(2)] == ids[:2]

    def test_skips_non_pending(self, queue) -> None:
        """Test that InFlight and Rejected commands are not batched."""
        first = queue.enqueue(Command.create_task("First"))
        second = queue.enqueue(Command.create_task("Second"))
        queue.mark(first, CommandStatus.IN_FLIGHT)

        assert [c.temp_id for c in queue.next_batch(10)] == [second]

    def test_extends_for_dependent_commands(self, queue) -> None:
        """Test that a completion stays with the create it depends on."""
        create = Command.create_task("Buy milk")
        queue.enqueue(create)
        queue.enqueue(Command.create_task("Other"))
        complete_id = queue.enqueue(Command.complete_task(create.temp_id))
        queue.enqueue(Command.create_task("Later"))

        batch = queue.next_batch(1)

        assert [c.temp_id for c in batch][-1] == complete_id
        assert len(batch) == 3

    def test_independent_commands_not_pulled_in(self, queue) -> None:
        """Test that completions of other tasks do not extend the batch."""
        queue.enqueue(Command.create_task("Buy milk"))
        queue.enqueue(Command.complete_task("some-confirmed-task"))

        assert len(queue.next_batch(1)) == 1

    def test_returns_copies(self, queue) -> None:
        """Test that mutating a batch does not touch the queue."""
        queue.enqueue(Command.create_task("Buy milk"))

        queue.next_batch(1)[0].status = CommandStatus.COMMITTED

        assert len(queue.pending()) == 1

    def test_invalid_size(self, queue) -> None:
        """Test that max_n must be positive."""
        with pytest.raises(ValueError, match="max_n"):
            queue.next_batch(0)


class TestTransitions:
    """Test suite for status transitions."""

    def test_mark_in_flight_then_committed(self, queue) -> None:
        """Test the happy path Pending -> InFlight -> Committed."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))

        queue.mark(command_id, CommandStatus.IN_FLIGHT)
        marked = queue.mark(command_id, CommandStatus.COMMITTED)

        assert marked.status == CommandStatus.COMMITTED

    def test_terminal_status_is_final(self, queue) -> None:
        """Test that a rejected command cannot move again."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))
        queue.mark(command_id, CommandStatus.REJECTED, "nope")

        with pytest.raises(ValueError, match="rejected -> pending \\(final\\)"):
            queue.mark(command_id, CommandStatus.PENDING)

    def test_commit_refuses_to_move_terminal_command(self, queue) -> None:
        """Test that a sync outcome cannot revive a rejected command."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))
        queue.mark(command_id, CommandStatus.REJECTED, "nope")

        with pytest.raises(ValueError, match="final"):
            queue.commit({command_id: (CommandStatus.PENDING, None)})

        assert queue.get(command_id).status == CommandStatus.REJECTED

    def test_pending_cannot_commit_directly(self, queue) -> None:
        """Test that a command must be in flight to be committed."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))

        with pytest.raises(ValueError):
            queue.mark(command_id, CommandStatus.COMMITTED)

    def test_mark_unknown(self, queue) -> None:
        """Test that marking an unknown command raises KeyError."""
        with pytest.raises(KeyError):
            queue.mark("missing", CommandStatus.IN_FLIGHT)

    def test_reason_kept_only_for_rejected(self, queue) -> None:
        """Test that a reason is recorded for rejections only."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))

        marked = queue.mark(command_id, CommandStatus.IN_FLIGHT, "ignored")

        assert marked.reason is None

    def test_mark_many_skips_invalid(self, queue) -> None:
        """Test that bulk marking leaves commands it cannot move alone."""
        pending = queue.enqueue(Command.create_task("Pending"))
        rejected = queue.enqueue(Command.create_task("Rejected"))
        queue.mark(rejected, CommandStatus.REJECTED, "nope")

        queue.mark_many([pending, rejected, "missing"], CommandStatus.IN_FLIGHT)

        assert queue.get(pending).status == CommandStatus.IN_FLIGHT
        assert queue.get(rejected).status == CommandStatus.REJECTED

    def test_in_flight_reverts_on_load(self, queue) -> None:
        """Test that commands saved mid-pass come back as Pending."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))
        queue.mark(command_id, CommandStatus.IN_FLIGHT)
        queue.save()

        assert reload(queue).get(command_id).status == CommandStatus.PENDING


class TestCommit:
    """Test suite for CommandQueue.commit."""

    def test_commit_prunes_committed_and_keeps_rejected(self, queue) -> None:
        """Test that one write drops committed commands and records rejections."""
        ok = queue.enqueue(Command.create_task("Ok"))
        bad = queue.enqueue(Command.create_task("Bad"))
        queue.mark_many([ok, bad], CommandStatus.IN_FLIGHT)

        queue.commit(
            {
                ok: (CommandStatus.COMMITTED, None),
                bad: (CommandStatus.REJECTED, "Quota exceeded"),
            }
        )

        fresh = reload(queue)
        assert fresh.get(ok) is None
        rejected = fresh.get(bad)
        assert rejected.status == CommandStatus.REJECTED
        assert rejected.reason == "Quota exceeded"

    def test_commit_keeps_commands_added_meanwhile(self, queue) -> None:
        """Test that commands enqueued after the batch was taken survive."""
        sent = queue.enqueue(Command.create_task("Sent"))
        queue.mark(sent, CommandStatus.IN_FLIGHT)
        added = queue.enqueue(Command.create_task("Added later"))

        queue.commit({sent: (CommandStatus.COMMITTED, None)})

        assert [c.temp_id for c in reload(queue).pending()] == [added]

    def test_commit_requeues_unanswered(self, queue) -> None:
        """Test that an in-flight command can be put back to Pending."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))
        queue.mark(command_id, CommandStatus.IN_FLIGHT)

        queue.commit({command_id: (CommandStatus.PENDING, None)})

        assert queue.get(command_id).status == CommandStatus.PENDING


class TestDismiss:
    """Test suite for CommandQueue.dismiss."""

    def test_dismiss_rejected(self, queue) -> None:
        """Test that an acknowledged rejection is removed for good."""
        command_id = queue.enqueue(Command.create_task("Bad"))
        queue.mark(command_id, CommandStatus.REJECTED, "nope")

        queue.dismiss(command_id)

        assert reload(queue).rejected() == []

    def test_dismiss_pending_refused(self, queue) -> None:
        """Test that only rejected commands can be dismissed."""
        command_id = queue.enqueue(Command.create_task("Buy milk"))

        with pytest.raises(ValueError, match="Only rejected"):
            queue.dismiss(command_id)


class TestCorruption:
    """Test suite for unreadable queue files."""

    def test_duplicate_ids_are_corrupt(self, queue) -> None:
        """Test that a file listing a command twice is refused."""
        command = Command.create_task("Buy milk").model_dump(mode="json")
        queue.path.write_text(json.dumps({"version": 1, "commands": [command, command]}))

        with pytest.raises(CorruptState, match="Duplicate"):
            queue.load()

    def test_unknown_version_is_corrupt(self, queue) -> None:
        """Test that a queue from another format version is refused."""
        queue.path.write_text(json.dumps({"version": 7, "commands": []}))

        with pytest.raises(CorruptState, match="version"):
            queue.load()

    def test_bad_command_type_is_corrupt(self, queue) -> None:
        """Test that an unknown command type violates the schema."""
        queue.path.write_text(
            json.dumps({"version": 1, "commands": [{"temp_id": "a", "type": "item_delete"}]})
        )

        with pytest.raises(CorruptState, match="schema"):
            queue.load()

    def test_load_or_reset(self, queue, data_dir) -> None:
        """Test that a corrupt queue is quarantined and emptied."""
        queue.path.write_text("not json")

        assert queue.load_or_reset() is True

        assert len(queue) == 0
        assert (data_dir / "commands.json.corrupt").exists()
