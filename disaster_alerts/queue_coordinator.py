"""Drive the pipeline over the main and priority queues.

Each message moves through an explicit state machine::

    RECEIVED -> DUPLICATE -> ACKNOWLEDGED
    RECEIVED -> PROCESSING -> PERSISTED [-> ALERTED] -> ACKNOWLEDGED
    RECEIVED -> PROCESSING -(error)-> REQUEUED          (receive count < max)
    RECEIVED -> PROCESSING -(error)-> DEAD_LETTERED    (receive count >= max)
    PERSISTED -(ack failed)-> REQUEUED                  (settled as a duplicate later)

Messages are acknowledged (deleted) only after the event is stored, which
gives at-least-once delivery; the deduplication gate makes redelivery
harmless. Retry bookkeeping relies on the receive count kept by the queue:
a failing message is simply left in place and comes back once its
visibility timeout expires.
"""

from __future__ import annotations

import enum
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List

from .config import CONFIG, Config
from .errors import QueueError
from .message_queue import DEAD_LETTER_QUEUE, MAIN_QUEUE, PRIORITY_QUEUE, SqliteMessageQueue
from .models import PipelineStatus, QueueEnvelope, QueueMessage, isoformat, utc_now
from .pipeline import DisasterPipeline


logger = logging.getLogger(__name__)


class MessageState(str, enum.Enum):
    RECEIVED = "received"
    DUPLICATE = "duplicate"
    PROCESSING = "processing"
    PERSISTED = "persisted"
    ALERTED = "alerted"
    ACKNOWLEDGED = "acknowledged"
    REQUEUED = "requeued"
    DEAD_LETTERED = "dead_lettered"


def failure_transition(receive_count: int, max_receives: int) -> MessageState:
    """State a failed message moves to given how often it was delivered."""
    return MessageState.DEAD_LETTERED if receive_count >= max_receives else MessageState.REQUEUED


@dataclass
class MessageResult:
    message_id: str
    state: MessageState
    path: List[MessageState]
    error: str | None = None


@dataclass
class BatchReport:
    processed: int = 0
    duplicates: int = 0
    errors: int = 0
    dead_lettered: int = 0

    def add(self, result: MessageResult) -> None:
        if MessageState.DEAD_LETTERED in result.path:
            self.dead_lettered += 1
        if result.error is not None:
            self.errors += 1
        elif MessageState.DUPLICATE in result.path:
            self.duplicates += 1
        elif result.state is MessageState.ACKNOWLEDGED:
            self.processed += 1

    def merge(self, other: "BatchReport") -> None:
        self.processed += other.processed
        self.duplicates += other.duplicates
        self.errors += other.errors
        self.dead_lettered += other.dead_lettered


class QueueCoordinator:
    def __init__(
        self,
        queue: SqliteMessageQueue,
        pipeline: DisasterPipeline,
        config: Config | None = None,
        queues: Iterable[str] = (MAIN_QUEUE, PRIORITY_QUEUE),
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.config = config or CONFIG
        self.queues = tuple(queues)

    def _dead_letter(self, message: QueueMessage, reason: str) -> None:
        self.queue.send(
            DEAD_LETTER_QUEUE,
            message.body,
            {
                "originalQueue": message.queue,
                "failureReason": reason,
                "failedAt": isoformat(utc_now()),
            },
        )
        self.queue.delete(message.queue, message.receipt_handle)
        logger.error("Message %s from %s dead-lettered: %s", message.message_id, message.queue, reason)

    def _fail(self, message: QueueMessage, path: List[MessageState], exc: Exception) -> MessageResult:
        state = failure_transition(message.receive_count, self.config.max_receives)
        if state is MessageState.DEAD_LETTERED:
            self._dead_letter(message, f"Max retries exceeded: {exc}")
        path.append(state)
        return MessageResult(message.message_id, state, path, str(exc))

    def handle_message(self, message: QueueMessage) -> MessageResult:
        """Process a single delivered message and return its final state."""
        path = [MessageState.RECEIVED]

        try:
            envelope = QueueEnvelope.from_json(message.body)
        except ValueError as exc:
            # Malformed input fails the same way on every delivery
            self._dead_letter(message, f"Invalid message: {exc}")
            path.append(MessageState.DEAD_LETTERED)
            return MessageResult(message.message_id, MessageState.DEAD_LETTERED, path, str(exc))

        try:
            path.append(MessageState.PROCESSING)
            outcome = self.pipeline.process(envelope.post)
        except Exception as exc:
            logger.error(
                "Error processing message %s (receive %d): %s",
                message.message_id, message.receive_count, exc,
            )
            return self._fail(message, path, exc)

        if outcome.status is PipelineStatus.DUPLICATE:
            path[-1] = MessageState.DUPLICATE
        else:
            path.append(MessageState.PERSISTED)
            if outcome.alerted:
                path.append(MessageState.ALERTED)

        try:
            self.queue.delete(message.queue, message.receipt_handle)
        except QueueError as exc:
            # The event is stored; the redelivered copy is settled as a duplicate
            logger.warning("Could not acknowledge message %s, leaving it for redelivery: %s", message.message_id, exc)
            path.append(MessageState.REQUEUED)
            return MessageResult(message.message_id, MessageState.REQUEUED, path, str(exc))
        path.append(MessageState.ACKNOWLEDGED)
        logger.info("Processed message %s from %s queue", message.message_id, message.queue)
        return MessageResult(message.message_id, MessageState.ACKNOWLEDGED, path)

    def process_queue(self, queue_name: str) -> BatchReport:
        report = BatchReport()
        messages = self.queue.receive(
            queue_name,
            max_messages=self.config.queue_batch_size,
            visibility_timeout=self.config.visibility_timeout_seconds,
        )
        logger.info("Processing %d messages from %s queue", len(messages), queue_name)
        if not messages:
            return report

        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                results = list(executor.map(self._safe_handle, messages))
        else:
            results = [self._safe_handle(message) for message in messages]
        for result in results:
            report.add(result)
        return report

    def _safe_handle(self, message: QueueMessage) -> MessageResult:
        # Anything escaping handle_message still counts against the receive limit
        try:
            return self.handle_message(message)
        except Exception as exc:
            logger.error("Could not settle message %s: %s", message.message_id, exc)
            try:
                return self._fail(message, [MessageState.RECEIVED], exc)
            except Exception as dead_letter_exc:
                logger.error("Could not dead-letter message %s: %s", message.message_id, dead_letter_exc)
                return MessageResult(message.message_id, MessageState.REQUEUED, [MessageState.RECEIVED], str(exc))

    def run_once(self) -> BatchReport:
        """Process one batch from each queue independently."""
        total = BatchReport()
        for queue_name in self.queues:
            try:
                total.merge(self.process_queue(queue_name))
            except Exception as exc:
                logger.error("Error processing %s queue: %s", queue_name, exc)
                total.errors += 1
        logger.info(
            "Queue processing completed: %d processed, %d duplicates, %d errors, %d dead-lettered",
            total.processed, total.duplicates, total.errors, total.dead_lettered,
        )
        return total

    def run_forever(self, poll_interval: float = 20.0) -> None:
        while True:
            report = self.run_once()
            if report.processed + report.duplicates + report.errors == 0:
                time.sleep(poll_interval)
