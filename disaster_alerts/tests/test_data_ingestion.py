"""Dataset loading, evaluation, configuration and the command line."""

import pytest

from disaster_alerts import main as cli
from disaster_alerts.classification import DisasterClassifier
from disaster_alerts.config import load_config
from disaster_alerts.data_ingestion import load_posts, parse_count, parse_timestamp
from disaster_alerts.evaluation import evaluate, load_ground_truth
from disaster_alerts.message_queue import MAIN_QUEUE, PRIORITY_QUEUE, SqliteMessageQueue
from disaster_alerts.models import Coordinates, Engagement, QueueEnvelope

from .fakes import failing_llm


POSTS_TSV = (
    "id\tplatform\ttext\tauthor\tcreatedAt\tlocation\tlat\tlng\tlikes\tshares\tcomments\n"
    "p1\ttwitter\tBanjir di Shah Alam\tuser1\t2025-01-01T10:00:00Z\tShah Alam\t3.07\t101.52\t12\t3\t1\n"
    "p2\tfacebook\tRoads closed by landslide\tuser2\tAug 22, 2024\t\t\t\tn/a\t\t\n"
    "p3\ttwitter\t\tuser3\t\t\t\t\t\t\t\n"
)


@pytest.fixture
def posts_file(tmp_path):
    path = tmp_path / "posts.tsv"
    path.write_text(POSTS_TSV, encoding="utf-8")
    return str(path)


# ─── Dataset loading ────────────────────────────────────────

def test_load_posts(posts_file):
    posts = load_posts(posts_file)

    assert [p.id for p in posts] == ["p1", "p2"]
    first, second = posts
    assert first.platform == "twitter"
    assert first.location == "Shah Alam"
    assert first.coordinates == Coordinates(lat=3.07, lng=101.52)
    assert first.engagement == Engagement(likes=12, shares=3, comments=1)
    assert first.created_at == "2025-01-01T10:00:00+00:00"
    assert second.location is None
    assert second.coordinates is None
    assert second.engagement == Engagement()
    assert second.created_at.startswith("2024-08-22")


def test_missing_columns(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("user_id,tweet\n1,hello\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_posts(str(path))


def test_parse_helpers():
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None
    assert parse_count("42") == 42
    assert parse_count(float("nan")) == 0
    assert parse_count("-5") == 0


# ─── Evaluation ─────────────────────────────────────────────

def test_evaluate_writes_reports(tmp_path, config):
    labels = tmp_path / "labels.csv"
    labels.write_text(
        "text,label\n"
        "Flood in Kuala Lumpur,disaster\n"
        "Earthquake felt in Ranau,disaster\n"
        "Great coffee at the cafe,none\n"
        "Heavy rain but all fine,none\n",
        encoding="utf-8",
    )
    y_true, texts = load_ground_truth(str(labels))
    assert y_true == [1, 1, 0, 0]

    output = tmp_path / "evaluation"
    report = evaluate(str(labels), str(output), DisasterClassifier(llm=failing_llm, config=config))

    assert "disaster" in report
    for name in ("classification_report.txt", "confusion_matrix.png", "roc_curve.png"):
        assert (output / name).exists()


# ─── Configuration ──────────────────────────────────────────

def test_load_config_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("MAX_RECEIVES", "5")
    monkeypatch.setenv("ALERT_THRESHOLD", "0.8")
    monkeypatch.setenv("GEOCODING_ENABLED", "true")
    monkeypatch.setenv("QUEUE_BATCH_SIZE", "lots")

    config = load_config(str(tmp_path / "missing.env"))

    assert config.max_receives == 5
    assert config.alert_threshold == pytest.approx(0.8)
    assert config.geocoding_enabled is True
    assert config.queue_batch_size == 10


# ─── Command line ───────────────────────────────────────────

def test_enqueue_command(posts_file, config, monkeypatch):
    monkeypatch.setattr(cli, "load_config", lambda env_path: config)

    cli.main(["enqueue", "--input", posts_file])
    cli.main(["enqueue", "--input", posts_file, "--priority"])

    queue = SqliteMessageQueue(config.database_path)
    try:
        assert queue.count(MAIN_QUEUE) == 2
        assert queue.count(PRIORITY_QUEUE) == 2
        envelope = QueueEnvelope.from_json(queue.peek(MAIN_QUEUE)[0].body)
        assert envelope.post.text == "Banjir di Shah Alam"
    finally:
        queue.close()


def test_purge_command(config, monkeypatch):
    monkeypatch.setattr(cli, "load_config", lambda env_path: config)
    assert cli.purge(config) == 0
    cli.main(["purge"])
