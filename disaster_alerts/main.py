"""Command line driver for the disaster alert pipeline.

Usage::

    python -m disaster_alerts.main enqueue --input posts.tsv [--priority]
    python -m disaster_alerts.main process [--loop] [--interval 20]
    python -m disaster_alerts.main purge
    python -m disaster_alerts.main evaluate --ground-truth labels.csv
    python -m disaster_alerts.main serve --port 8000

``enqueue`` loads a CSV/TSV export of scraped posts (see
:func:`disaster_alerts.data_ingestion.load_posts`) and places each post on
the main or priority queue. ``process`` runs the queue coordinator, which
deduplicates, classifies, scores, corroborates, stores and, when warranted,
alerts on every queued post. Events and queues live in the SQLite database
named by ``DATABASE_PATH``.
"""

from __future__ import annotations

import argparse
import logging

from .config import Config, load_config
from .data_ingestion import load_posts
from .message_queue import MAIN_QUEUE, PRIORITY_QUEUE, SqliteMessageQueue
from .pipeline import DisasterPipeline
from .queue_coordinator import QueueCoordinator
from .storage import EventStore


logger = logging.getLogger(__name__)


def enqueue(config: Config, input_path: str, priority: bool = False) -> int:
    posts = load_posts(input_path)
    logger.info("Loaded %d posts from %s", len(posts), input_path)
    queue_name = PRIORITY_QUEUE if priority else MAIN_QUEUE
    queue = SqliteMessageQueue(config.database_path)
    try:
        for post in posts:
            queue.enqueue_post(post, queue_name)
    finally:
        queue.close()
    logger.info("Enqueued %d posts on the %s queue", len(posts), queue_name)
    return len(posts)


def process(config: Config, loop: bool = False, interval: float = 20.0) -> None:
    store = EventStore(config.database_path)
    queue = SqliteMessageQueue(config.database_path)
    coordinator = QueueCoordinator(queue, DisasterPipeline(store, config=config), config)
    try:
        if loop:
            coordinator.run_forever(interval)
        else:
            coordinator.run_once()
    finally:
        queue.close()
        store.close()


def purge(config: Config) -> int:
    store = EventStore(config.database_path)
    try:
        removed = store.purge_expired()
    finally:
        store.close()
    logger.info("Removed %d expired events", removed)
    return removed


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Disaster alert pipeline")
    parser.add_argument("--env", default=".env", help="Path to the .env file")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_enqueue = sub.add_parser("enqueue", help="Queue posts from a CSV/TSV file")
    p_enqueue.add_argument("--input", required=True, help="Path to the posts file")
    p_enqueue.add_argument("--priority", action="store_true", help="Use the priority queue")

    p_process = sub.add_parser("process", help="Process queued posts")
    p_process.add_argument("--loop", action="store_true", help="Keep polling the queues")
    p_process.add_argument("--interval", type=float, default=20.0, help="Seconds between empty polls")

    sub.add_parser("purge", help="Delete expired events")

    p_eval = sub.add_parser("evaluate", help="Evaluate the classifier against labelled posts")
    p_eval.add_argument("--ground-truth", required=True, help="CSV with text and label columns")
    p_eval.add_argument("--output", default="evaluation", help="Directory to save evaluation outputs")

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    config = load_config(args.env)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "enqueue":
        enqueue(config, args.input, args.priority)
    elif args.command == "process":
        process(config, args.loop, args.interval)
    elif args.command == "purge":
        purge(config)
    elif args.command == "evaluate":
        from .classification import DisasterClassifier
        from .evaluation import evaluate

        evaluate(args.ground_truth, args.output, DisasterClassifier(config=config))
    elif args.command == "serve":
        import uvicorn

        from .api import create_app

        uvicorn.run(create_app(config=config), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
