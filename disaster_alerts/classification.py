"""Classify social media posts as disaster reports or ordinary chatter.

Given the text of a post, the language model is asked for a single JSON
object describing whether the post reports a disaster, what kind, how
severe it is and which entities, sentiment and key phrases it carries.

The model is treated as an untrusted collaborator, both for correctness and
for output format, so classification runs as three tiers:

1. ``MODEL``: the model answer is stripped of markdown fences and parsed as
   strict JSON, then coerced field by field into a
   :class:`~disaster_alerts.models.ClassificationResult`.
2. ``SAFE_RESPONSE``: the model answered but not with usable JSON. The raw
   answer and the post are searched for explicit "not a disaster" markers,
   mundane context keywords and unambiguous disaster keywords.
3. ``HEURISTIC``: the model call itself failed (connection, timeout,
   authentication) or anything else went wrong. A local keyword pipeline
   extracts entities, sentiment, key phrases and disaster keywords in
   English and Malay.

Each tier returns a complete result with a lower confidence than the one
before it, and :meth:`DisasterClassifier.classify` never raises.

The model call uses LangChain's runnable composition with the Ollama model
configured in :mod:`disaster_alerts.config`; any LangChain runnable (or
plain callable) can be injected instead, which is how the tests drive it.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import PromptTemplate
from langchain_ollama import OllamaLLM

from .config import CONFIG, Config
from .models import (
    ClassificationResult,
    ClassifierTier,
    Entity,
    KeyPhrase,
    Sentiment,
)


logger = logging.getLogger(__name__)

# Longest slice of a post sent to the model.
MAX_PROMPT_CHARS = 4000

NEGATIVE_MARKERS = (
    "not a disaster",
    "not describe a disaster",
    "not an emergency",
    "normal traffic",
    "routine activities",
)

# Everyday contexts that strongly indicate a post is not about a disaster.
MUNDANE_CONTEXTS = (
    "traffic jam", "stuck in traffic", "road closure", "construction",
    "shopping", "restaurant", "movie", "concert", "sports",
    "office", "meeting", "conference", "hangout",
    "finding spots", "normal day", "food",
    "croissant", "bakery", "breakfast", "lunch", "dinner",
    "eating", "drinking", "coffee", "tea", "snack",
    "best", "delicious", "tasty", "flaky", "dense", "chewy",
    "butter", "buttery", "bread", "pastry", "cafe", "café",
)

CLEAR_DISASTER_KEYWORDS = (
    "flood", "earthquake", "fire", "storm", "emergency", "disaster", "evacuation", "rescue",
)

# English and Malay keywords used by the local heuristic tier.
DISASTER_KEYWORDS = (
    "earthquake", "flood", "storm", "fire", "emergency", "disaster",
    "gempa", "banjir", "ribut", "kebakaran", "kecemasan", "bencana",
)

EVENT_KEYWORDS = DISASTER_KEYWORDS + (
    "evacuation", "rescue", "help", "danger", "warning", "alert",
)

KEY_PHRASE_KEYWORDS = ("earthquake", "flood", "storm", "fire", "emergency", "disaster")

NEGATIVE_WORDS = ("disaster", "emergency", "danger", "flood", "fire", "damage", "injured", "stuck", "trapped")
POSITIVE_WORDS = ("safe", "rescue", "help", "recovery", "saved")

MALAY_WORDS = ("banjir", "ribut", "gempa", "bencana", "kecemasan", "kebakaran", "tanah runtuh")

DISASTER_TYPES = {
    "flood": ("flood", "banjir"),
    "earthquake": ("earthquake", "gempa"),
    "fire": ("fire", "kebakaran"),
    "storm": ("storm", "ribut"),
}

SEVERITY_WORDS = {"low": 0.3, "medium": 0.5, "high": 0.7, "critical": 0.9}

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_END_RE = re.compile(r"\n?```\s*$", re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

_PROMPT = PromptTemplate(
    input_variables=["text"],
    template="""
You must respond with ONLY a valid JSON object. No other text allowed.

**Task**: Decide whether the social media post below reports a natural disaster or emergency.

**Fields**
- isDisaster: true only if the post describes an actual disaster or emergency happening now.
- disasterType: e.g. "flood", "earthquake", "fire", "storm", "landslide", or null.
- severity: number from 0 to 1 describing the impact on people and property.
- confidence: number from 0 to 1 describing how sure you are.
- entities: list of {{"text": ..., "type": "LOCATION" | "EVENT" | "ORGANIZATION" | "PERSON", "confidence": ...}}.
- sentiment: {{"label": "POSITIVE" | "NEGATIVE" | "NEUTRAL" | "MIXED", "confidence": ...}}.
- keyPhrases: list of {{"text": ..., "confidence": ...}}.
- location: place mentioned in the post, or null.
- reasoning: one short sentence.

Posts about food, commuting, shopping or leisure are NOT disasters even if they use dramatic words.

**Example**
{{
  "isDisaster": false,
  "disasterType": null,
  "severity": 0.1,
  "confidence": 0.9,
  "entities": [],
  "sentiment": {{"label": "NEUTRAL", "confidence": 0.5}},
  "keyPhrases": [],
  "location": null,
  "reasoning": "This is about normal traffic, not a disaster"
}}

**Post**
{text}

CRITICAL: Start your response with {{ and end with }}. No text before or after the JSON.
""",
)


def _contains_any(text: str, keywords: Tuple[str, ...]) -> List[str]:
    """Return the keywords that appear in ``text`` as whole words or phrases."""
    return [kw for kw in keywords if re.search(rf"(?<!\w){re.escape(kw)}(?!\w)", text)]


def _contains_substring(text: str, keywords: Tuple[str, ...]) -> List[str]:
    return [kw for kw in keywords if kw in text]


def detect_language(text: str) -> str:
    """Return ``"ms"`` for posts carrying Malay disaster vocabulary, else ``"en"``."""
    lower = text.lower()
    return "ms" if any(word in lower for word in MALAY_WORDS) else "en"


def _infer_disaster_type(keywords: List[str]) -> str:
    for disaster_type, words in DISASTER_TYPES.items():
        if any(kw in words for kw in keywords):
            return disaster_type
    return "unknown"


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _as_unit_float(value: Any, default: float) -> float:
    """Coerce a model-provided score to [0, 1].

    Accepts numbers, numeric strings and the qualitative labels ``low``,
    ``medium``, ``high`` and ``critical``. Zero and unparseable values fall
    back to ``default``.
    """
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        label = value.strip().lower()
        if label in SEVERITY_WORDS:
            return SEVERITY_WORDS[label]
        try:
            value = float(label)
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or value != value:  # NaN
        return default
    if value == 0:
        return default
    return _clamp_unit(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return False


def _as_optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip() and value.strip().lower() not in {"null", "none", "unknown"}:
        return value.strip()
    return None


def _parse_entities(value: Any) -> Tuple[Entity, ...]:
    entities: List[Entity] = []
    if not isinstance(value, list):
        return ()
    for item in value:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        entity_type = item.get("type")
        entities.append(
            Entity(
                text=text.strip(),
                type=entity_type.upper() if isinstance(entity_type, str) else "OTHER",
                confidence=_as_unit_float(item.get("confidence"), 0.5),
            )
        )
    return tuple(entities)


def _parse_sentiment(value: Any) -> Sentiment:
    if not isinstance(value, dict):
        return Sentiment()
    label = value.get("label", value.get("sentiment"))
    if not isinstance(label, str) or not label.strip():
        label = "NEUTRAL"
    return Sentiment(label=label.strip().upper(), confidence=_as_unit_float(value.get("confidence"), 0.5))


def _parse_key_phrases(value: Any) -> Tuple[KeyPhrase, ...]:
    phrases: List[KeyPhrase] = []
    if not isinstance(value, list):
        return ()
    for item in value:
        if isinstance(item, str) and item.strip():
            phrases.append(KeyPhrase(text=item.strip(), confidence=0.5))
        elif isinstance(item, dict) and isinstance(item.get("text"), str) and item["text"].strip():
            phrases.append(KeyPhrase(text=item["text"].strip(), confidence=_as_unit_float(item.get("confidence"), 0.5)))
    return tuple(phrases)


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```) if present."""
    text = raw.strip()
    text = _FENCE_START_RE.sub("", text)
    text = _FENCE_END_RE.sub("", text)
    return text.strip()


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """Return the JSON object embedded in a model answer, or ``None``.

    The answer is stripped of code fences and the outermost ``{...}`` span is
    parsed strictly. Anything that is not a JSON object yields ``None``.
    """
    match = _JSON_OBJECT_RE.search(strip_code_fences(raw))
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except (json.JSONDecodeError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def result_from_model_output(data: Dict[str, Any]) -> ClassificationResult:
    """Coerce a parsed model answer into a well-formed result."""
    is_disaster = _as_bool(data.get("isDisaster"))
    disaster_type = _as_optional_str(data.get("disasterType"))
    if is_disaster and disaster_type is None:
        disaster_type = "unknown"
    reasoning = data.get("reasoning")
    return ClassificationResult(
        is_disaster=is_disaster,
        disaster_type=disaster_type if is_disaster else None,
        severity=_as_unit_float(data.get("severity"), 0.1),
        confidence=_as_unit_float(data.get("confidence"), 0.5),
        tier=ClassifierTier.MODEL,
        entities=_parse_entities(data.get("entities")),
        sentiment=_parse_sentiment(data.get("sentiment")),
        key_phrases=_parse_key_phrases(data.get("keyPhrases")),
        location=_as_optional_str(data.get("location")),
        reasoning=reasoning.strip() if isinstance(reasoning, str) and reasoning.strip() else "No reasoning provided",
    )


def _non_disaster(tier: ClassifierTier, confidence: float, reasoning: str) -> ClassificationResult:
    return ClassificationResult(
        is_disaster=False,
        disaster_type=None,
        severity=0.1,
        confidence=confidence,
        tier=tier,
        reasoning=reasoning,
    )


def safe_response(text: str, raw_response: str) -> ClassificationResult:
    """Build a conservative result when the model answer could not be parsed."""
    lower_text = text.lower()
    lower_response = raw_response.lower()

    if _contains_substring(lower_response, NEGATIVE_MARKERS):
        return _non_disaster(
            ClassifierTier.SAFE_RESPONSE, 0.8, "Model indicated this is not a disaster"
        )

    if _contains_any(lower_text, MUNDANE_CONTEXTS):
        return _non_disaster(
            ClassifierTier.SAFE_RESPONSE, 0.9, "Content appears to be about normal activities, not disasters"
        )

    keywords = _contains_substring(lower_text, CLEAR_DISASTER_KEYWORDS)
    if keywords:
        return ClassificationResult(
            is_disaster=True,
            disaster_type=_infer_disaster_type(keywords),
            severity=0.5,
            confidence=0.4,
            tier=ClassifierTier.SAFE_RESPONSE,
            reasoning="Safe response - conservative analysis due to parsing issues",
        )
    return _non_disaster(
        ClassifierTier.SAFE_RESPONSE, 0.4, "Safe response - no clear disaster indicators"
    )


def extract_basic_entities(text: str) -> Tuple[Entity, ...]:
    """Capitalised tokens become LOCATION candidates, disaster words EVENTs."""
    entities: List[Entity] = []
    for word in text.split():
        clean = re.sub(r"[^\w]", "", word)
        if not clean:
            continue
        if len(clean) > 3 and clean[0].isupper():
            entities.append(Entity(text=clean, type="LOCATION", confidence=0.6))
        lower = clean.lower()
        if any(kw in lower for kw in EVENT_KEYWORDS):
            entities.append(Entity(text=clean, type="EVENT", confidence=0.8))
    return tuple(entities)


def analyze_basic_sentiment(text: str) -> Sentiment:
    lower = text.lower()
    negative = len(_contains_substring(lower, NEGATIVE_WORDS))
    positive = len(_contains_substring(lower, POSITIVE_WORDS))
    if negative > positive:
        return Sentiment(label="NEGATIVE", confidence=min(0.9, 0.5 + negative * 0.1))
    if positive > negative:
        return Sentiment(label="POSITIVE", confidence=min(0.9, 0.5 + positive * 0.1))
    return Sentiment(label="NEUTRAL", confidence=0.5)


def extract_basic_key_phrases(text: str) -> Tuple[KeyPhrase, ...]:
    phrases: List[KeyPhrase] = []
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if len(sentence) > 10 and _contains_substring(sentence.lower(), KEY_PHRASE_KEYWORDS):
            phrases.append(KeyPhrase(text=sentence, confidence=0.7))
    return tuple(phrases)


def heuristic_analysis(text: str) -> ClassificationResult:
    """Local keyword pipeline used when the model is unreachable."""
    lower = text.lower()
    if _contains_any(lower, MUNDANE_CONTEXTS):
        return _non_disaster(
            ClassifierTier.HEURISTIC, 0.9, "Fallback analysis - content appears to be normal activities"
        )

    keywords = _contains_substring(lower, DISASTER_KEYWORDS)
    return ClassificationResult(
        is_disaster=bool(keywords),
        disaster_type=_infer_disaster_type(keywords) if keywords else None,
        severity=0.5 if keywords else 0.1,
        confidence=0.3,
        tier=ClassifierTier.HEURISTIC,
        entities=extract_basic_entities(text),
        sentiment=analyze_basic_sentiment(text),
        key_phrases=extract_basic_key_phrases(text),
        location=None,
        reasoning="Fallback analysis - language model unavailable",
    )


class DisasterClassifier:
    """Three-tier disaster classifier over an LLM.

    Parameters
    ----------
    llm:
        Optional LangChain runnable (or callable) producing text from a
        prompt. When omitted an :class:`OllamaLLM` is built from ``config``
        on first use.
    config:
        Settings for the default model; defaults to the module-level CONFIG.
    """

    def __init__(self, llm: Any = None, config: Config | None = None):
        self.config = config or CONFIG
        self._llm = llm
        self._chain = None

    def _build_llm(self) -> OllamaLLM:
        kwargs: Dict[str, Any] = {
            "model": self.config.llm_model_name,
            "temperature": 0.1,
            "top_p": 0.9,
            "num_predict": 1000,
            "client_kwargs": {"timeout": self.config.llm_timeout_seconds},
        }
        if self.config.ollama_base_url:
            kwargs["base_url"] = self.config.ollama_base_url
        return OllamaLLM(**kwargs)

    def _get_chain(self):
        if self._chain is None:
            llm = self._llm if self._llm is not None else self._build_llm()
            self._chain = _PROMPT | llm | StrOutputParser()
        return self._chain

    def _call_model(self, text: str) -> str:
        response = self._get_chain().invoke({"text": text[:MAX_PROMPT_CHARS]})
        if not isinstance(response, str):
            response = str(response)
        return response.strip()

    def classify(self, text: str) -> ClassificationResult:
        """Classify ``text`` and return a well-formed result. Never raises."""
        if not isinstance(text, str):
            text = "" if text is None else str(text)
        if not text.strip():
            return _non_disaster(ClassifierTier.HEURISTIC, 0.3, "Empty text")

        try:
            raw = self._call_model(text)
        except Exception as exc:
            logger.warning("Model call failed (%s: %s); using heuristic tier", type(exc).__name__, exc)
            return heuristic_analysis(text)

        logger.debug("Raw model response: %s", raw)
        try:
            data = extract_json_object(raw)
            if data is None:
                logger.warning("No usable JSON in model response; using safe-response tier")
                return safe_response(text, raw)
            result = result_from_model_output(data)
            logger.info(
                "Classified with model tier: isDisaster=%s severity=%.2f (%s)",
                result.is_disaster, result.severity, result.reasoning,
            )
            return result
        except Exception as exc:
            logger.error("Unexpected error interpreting model response: %s; using heuristic tier", exc)
            return heuristic_analysis(text)
