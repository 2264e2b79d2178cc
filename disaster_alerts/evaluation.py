from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import List, Tuple

import matplotlib.pyplot as plt
import pandas as pd
from sklearn.metrics import auc, classification_report, confusion_matrix, roc_curve

from .classification import DisasterClassifier
from .models import RawPost, isoformat, utc_now
from .scoring import score


logger = logging.getLogger(__name__)

POSITIVE_LABELS = {"disaster", "true", "1", "yes"}
CLASS_NAMES = ["non-disaster", "disaster"]


def load_ground_truth(file_path: str) -> Tuple[List[int], List[str]]:
    """Load the ground truth labels and return binary labels and texts.

    The ground truth CSV file must have columns named ``text`` and
    ``label``. Labels such as ``disaster``, ``true``, ``1`` or ``yes`` count
    as positive; anything else is negative. Rows missing either value are
    skipped.

    Parameters
    ----------
    file_path: str
        Path to the ground truth CSV file.

    Returns
    -------
    Tuple[List[int], List[str]]
        Binary labels (1 for disaster, 0 otherwise) and the matching texts.
    """
    df = pd.read_csv(file_path, sep=None, engine="python")
    # Strip whitespace from column names to avoid issues with trailing spaces
    df.columns = [str(c).strip() for c in df.columns]

    labels = []
    texts = []
    for _, row in df.iterrows():
        label = row.get("label")
        text = row.get("text")
        if pd.isna(label) or pd.isna(text):
            continue
        labels.append(1 if str(label).strip().lower() in POSITIVE_LABELS else 0)
        texts.append(str(text))
    return labels, texts


def severity_score(classifier: DisasterClassifier, text: str) -> Tuple[int, float]:
    """Classify ``text`` and return the binary prediction and its disaster score."""
    result = classifier.classify(text)
    post = RawPost(id=uuid.uuid4().hex, platform="evaluation", text=text, author="evaluation",
                   created_at=isoformat(utc_now()))
    return (1 if result.is_disaster else 0), score(result, post)


def evaluate(
    ground_truth_csv: str,
    output_dir: str = "evaluation",
    classifier: DisasterClassifier | None = None,
) -> str:
    """Compute evaluation metrics and produce plots.

    Writes ``classification_report.txt``, ``confusion_matrix.png`` and
    ``roc_curve.png`` to ``output_dir`` and returns the report text. The
    disaster score is used as the ranking score for the ROC curve.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    classifier = classifier or DisasterClassifier()

    y_true, texts = load_ground_truth(ground_truth_csv)
    y_pred: List[int] = []
    y_score: List[float] = []
    for text in texts:
        prediction, ranking = severity_score(classifier, text)
        y_pred.append(prediction)
        y_score.append(ranking)

    if not y_true:
        report = "No ground truth labels available."
    else:
        report = classification_report(
            y_true, y_pred, labels=[0, 1], target_names=CLASS_NAMES, zero_division=0
        )
    (out / "classification_report.txt").write_text(report, encoding="utf-8")

    cm = confusion_matrix(y_true, y_pred, labels=[0, 1])
    fig, ax = plt.subplots()
    ax.imshow(cm, interpolation="nearest", cmap=plt.cm.Blues)
    ax.set_title("Confusion Matrix")
    ax.set_xticks([0, 1])
    ax.set_yticks([0, 1])
    ax.set_xticklabels(CLASS_NAMES)
    ax.set_yticklabels(CLASS_NAMES)
    ax.set_xlabel("Predicted label")
    ax.set_ylabel("True label")
    for i in range(cm.shape[0]):
        for j in range(cm.shape[1]):
            ax.text(j, i, cm[i, j], ha="center", va="center", color="black")
    fig.tight_layout()
    fig.savefig(out / "confusion_matrix.png")
    plt.close(fig)

    fig, ax = plt.subplots()
    # ROC is undefined with a single class present
    if len(set(y_true)) == 2:
        fpr, tpr, _ = roc_curve(y_true, y_score)
        ax.plot(fpr, tpr, label=f"ROC curve (AUC = {auc(fpr, tpr):.2f})")
        ax.legend(loc="lower right")
    ax.plot([0, 1], [0, 1], linestyle="--", color="grey")
    ax.set_xlabel("False Positive Rate")
    ax.set_ylabel("True Positive Rate")
    ax.set_title("Receiver Operating Characteristic")
    fig.savefig(out / "roc_curve.png")
    plt.close(fig)

    logger.info("Evaluation complete. Reports saved to %s", out)
    return report
