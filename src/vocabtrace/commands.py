"""Command messages for the engine.

Callers that speak JSON (a browser extension bridge, the CLI `exec`
command) send messages of the form:

    {"type": "RATE_WORD", "payload": {"vocabId": "...", "rating": "known"}}

Each message type maps to one frozen dataclass. `dispatch` handles every
member of the Command union; adding a command without handling it is a
type-checker error.
"""

import dataclasses
import logging
import types
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Optional, Union, assert_never, get_args, get_origin

from vocabtrace.api import VocabTrace
from vocabtrace.constants import DEFAULT_CARD_COUNT, DEFAULT_LANGUAGE
from vocabtrace.exceptions import ValidationError, VocabTraceError
from vocabtrace.models import PageContext

logger = logging.getLogger(__name__)


# =============================================================================
# COMMANDS
# =============================================================================


@dataclass(frozen=True)
class RecordEncounter:
    TYPE: ClassVar[str] = "RECORD_ENCOUNTER"

    source: str
    page_url: str
    vocab_id: Optional[str] = None
    word: Optional[str] = None
    page_title: Optional[str] = None
    context_sentence: Optional[str] = None
    language: str = DEFAULT_LANGUAGE
    source_wordbank_id: Optional[str] = None


@dataclass(frozen=True)
class ScanPageWords:
    TYPE: ClassVar[str] = "SCAN_PAGE_WORDS"

    page_url: str
    tokens: tuple[str, ...] = ()
    sentences: tuple[str, ...] = ()
    page_title: Optional[str] = None
    language: str = DEFAULT_LANGUAGE
    record: bool = True


@dataclass(frozen=True)
class RateWord:
    TYPE: ClassVar[str] = "RATE_WORD"

    vocab_id: str
    rating: str


@dataclass(frozen=True)
class ToggleTraceWord:
    TYPE: ClassVar[str] = "TOGGLE_TRACE_WORD"

    vocab_id: str
    traced: bool


@dataclass(frozen=True)
class UnlockNoiseWord:
    TYPE: ClassVar[str] = "UNLOCK_NOISE_WORD"

    vocab_id: str


@dataclass(frozen=True)
class SyncNoiseWords:
    TYPE: ClassVar[str] = "SYNC_NOISE_WORDS"

    force: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class DrawCard:
    TYPE: ClassVar[str] = "DRAW_CARD"

    count: int = DEFAULT_CARD_COUNT
    mode: str = "shuffle"
    exclude_ids: tuple[str, ...] = ()
    seed: Optional[int] = None
    traced_only: bool = False


@dataclass(frozen=True)
class CleanupOldEncounters:
    TYPE: ClassVar[str] = "CLEANUP_OLD_ENCOUNTERS"

    age_days: Optional[int] = None
    min_count: Optional[int] = None
    dry_run: bool = False


@dataclass(frozen=True)
class UpsertVocab:
    TYPE: ClassVar[str] = "UPSERT_VOCAB"

    lemma: str
    surface: Optional[str] = None
    meaning: Optional[str] = None
    language: str = DEFAULT_LANGUAGE


@dataclass(frozen=True)
class DeleteVocab:
    TYPE: ClassVar[str] = "DELETE_VOCAB"

    vocab_id: str
    hard: bool = False


@dataclass(frozen=True)
class DeleteEncounter:
    TYPE: ClassVar[str] = "DELETE_ENCOUNTER"

    encounter_id: str


@dataclass(frozen=True)
class GetVocab:
    TYPE: ClassVar[str] = "GET_VOCAB"

    vocab_id: str


@dataclass(frozen=True)
class GetVocabList:
    TYPE: ClassVar[str] = "GET_VOCAB_LIST"

    filter: str = "all"
    search: Optional[str] = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class GetWordEncounters:
    TYPE: ClassVar[str] = "GET_WORD_ENCOUNTERS"

    vocab_id: str
    limit: int = 50
    offset: int = 0
    page_host: Optional[str] = None
    page_url: Optional[str] = None


@dataclass(frozen=True)
class GetTracedWords:
    TYPE: ClassVar[str] = "GET_TRACED_WORDS"


@dataclass(frozen=True)
class SaveTrace:
    TYPE: ClassVar[str] = "SAVE_TRACE"

    source_text: str
    page_url: str
    page_title: Optional[str] = None
    context_sentence: Optional[str] = None
    language: str = DEFAULT_LANGUAGE


@dataclass(frozen=True)
class GetTraces:
    TYPE: ClassVar[str] = "GET_TRACES"

    limit: int = 50
    offset: int = 0
    search: Optional[str] = None


@dataclass(frozen=True)
class DeleteTrace:
    TYPE: ClassVar[str] = "DELETE_TRACE"

    trace_id: str


@dataclass(frozen=True)
class GetWeeklyHighlights:
    TYPE: ClassVar[str] = "GET_WEEKLY_HIGHLIGHTS"

    limit: int = 50


@dataclass(frozen=True)
class GetStatistics:
    TYPE: ClassVar[str] = "GET_STATISTICS"


@dataclass(frozen=True)
class GetSettings:
    TYPE: ClassVar[str] = "GET_SETTINGS"


@dataclass(frozen=True)
class UpdateSettings:
    TYPE: ClassVar[str] = "UPDATE_SETTINGS"

    preferences: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CreateWordbank:
    TYPE: ClassVar[str] = "CREATE_WORDBANK"

    name: str
    language: str = DEFAULT_LANGUAGE
    code: str = "custom"


@dataclass(frozen=True)
class ImportWordbankWords:
    TYPE: ClassVar[str] = "IMPORT_WORDBANK_WORDS"

    wordbank_id: str
    words: tuple[Any, ...] = ()


@dataclass(frozen=True)
class SetWordbankEnabled:
    TYPE: ClassVar[str] = "SET_WORDBANK_ENABLED"

    wordbank_id: str
    enabled: bool


@dataclass(frozen=True)
class ListWordbanks:
    TYPE: ClassVar[str] = "LIST_WORDBANKS"

    language: Optional[str] = None


Command = Union[
    RecordEncounter,
    ScanPageWords,
    RateWord,
    ToggleTraceWord,
    UnlockNoiseWord,
    SyncNoiseWords,
    DrawCard,
    CleanupOldEncounters,
    UpsertVocab,
    DeleteVocab,
    DeleteEncounter,
    GetVocab,
    GetVocabList,
    GetWordEncounters,
    GetTracedWords,
    SaveTrace,
    GetTraces,
    DeleteTrace,
    GetWeeklyHighlights,
    GetStatistics,
    GetSettings,
    UpdateSettings,
    CreateWordbank,
    ImportWordbankWords,
    SetWordbankEnabled,
    ListWordbanks,
]

COMMAND_TYPES: dict[str, type] = {cls.TYPE: cls for cls in get_args(Command)}


# =============================================================================
# PARSING
# =============================================================================


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _coerce(name: str, annotation: Any, value: Any) -> Any:
    origin = get_origin(annotation)

    if origin in (Union, types.UnionType):
        if value is None:
            return None
        inner = [arg for arg in get_args(annotation) if arg is not type(None)]
        return _coerce(name, inner[0], value)

    if origin is tuple:
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"{name} must be a list")
        item_type = get_args(annotation)[0]
        if item_type is Any:
            return tuple(value)
        return tuple(_coerce(name, item_type, item) for item in value)

    if annotation is bool:
        if not isinstance(value, bool):
            raise ValidationError(f"{name} must be a boolean")
        return value
    if annotation is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer")
        return value
    if annotation is str:
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")
        return value
    if annotation is dict:
        if not isinstance(value, Mapping):
            raise ValidationError(f"{name} must be an object")
        return dict(value)
    return value


def parse_command(message: Any) -> Command:
    """Build a command from a JSON-style message.

    Payload keys are camelCase; missing optional fields take their defaults.

    Raises:
        ValidationError: If the type is unknown or the payload is malformed
    """
    if not isinstance(message, Mapping):
        raise ValidationError("message must be an object")
    cls = COMMAND_TYPES.get(message.get("type"))
    if cls is None:
        raise ValidationError(f"Unknown command type: {message.get('type')!r}")

    payload = message.get("payload") or {}
    if not isinstance(payload, Mapping):
        raise ValidationError("payload must be an object")

    kwargs = {}
    for f in dataclasses.fields(cls):
        key = _camel(f.name)
        if key in payload:
            kwargs[f.name] = _coerce(key, f.type, payload[key])
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise ValidationError(f"{key} is required")
    return cls(**kwargs)


# =============================================================================
# DISPATCH
# =============================================================================


async def dispatch(engine: VocabTrace, command: Command) -> Any:
    """Run a command against the engine and return JSON-ready data."""
    match command:
        case RecordEncounter():
            page = PageContext(command.page_url, command.page_title, command.context_sentence)
            encounter = await engine.record_encounter(
                command.source,
                page,
                vocab_id=command.vocab_id,
                word=command.word,
                language=command.language,
                source_wordbank_id=command.source_wordbank_id,
            )
            return encounter.to_dict()
        case ScanPageWords():
            result = await engine.scan_tokens(
                command.tokens,
                PageContext(command.page_url, command.page_title),
                language=command.language,
                sentences=command.sentences,
                record=command.record,
            )
            return result.to_dict()
        case RateWord():
            return (await engine.rate_word(command.vocab_id, command.rating)).to_dict()
        case ToggleTraceWord():
            return (await engine.toggle_trace(command.vocab_id, command.traced)).to_dict()
        case UnlockNoiseWord():
            return (await engine.unlock_noise_word(command.vocab_id)).to_dict()
        case SyncNoiseWords():
            result = await engine.sync_noise_words(force=command.force, dry_run=command.dry_run)
            return result.to_dict()
        case DrawCard():
            cards = await engine.draw_review_cards(
                command.count,
                command.mode,
                exclude_ids=command.exclude_ids,
                seed=command.seed,
                traced_only=command.traced_only,
            )
            return [card.to_dict() for card in cards]
        case CleanupOldEncounters():
            result = await engine.cleanup_stale(command.age_days, command.min_count, command.dry_run)
            return result.to_dict()
        case UpsertVocab():
            entry = await engine.upsert_vocab(
                command.lemma, command.surface, command.meaning, command.language
            )
            return entry.to_dict()
        case DeleteVocab():
            return (await engine.delete_vocab(command.vocab_id, command.hard)).to_dict()
        case DeleteEncounter():
            return (await engine.delete_encounter(command.encounter_id)).to_dict()
        case GetVocab():
            return (await engine.get_vocab(command.vocab_id)).to_dict()
        case GetVocabList():
            entries, total = await engine.list_vocab(
                command.filter, command.search, command.limit, command.offset
            )
            return {"items": [e.to_dict() for e in entries], "total": total}
        case GetWordEncounters():
            encounters, total = await engine.get_word_encounters(
                command.vocab_id,
                command.limit,
                command.offset,
                page_host=command.page_host,
                page_url=command.page_url,
            )
            return {"items": [e.to_dict() for e in encounters], "total": total}
        case GetTracedWords():
            return [e.to_dict() for e in await engine.get_traced_words()]
        case SaveTrace():
            page = PageContext(command.page_url, command.page_title, command.context_sentence)
            trace = await engine.save_trace(command.source_text, page, command.language)
            return trace.to_dict()
        case GetTraces():
            traces, total = await engine.get_traces(command.limit, command.offset, command.search)
            return {"items": [t.to_dict() for t in traces], "total": total}
        case DeleteTrace():
            return (await engine.delete_trace(command.trace_id)).to_dict()
        case GetWeeklyHighlights():
            return await engine.get_weekly_highlights(command.limit)
        case GetStatistics():
            return (await engine.get_statistics()).to_dict()
        case GetSettings():
            return (await engine.get_settings()).to_dict()
        case UpdateSettings():
            return (await engine.update_settings(command.preferences)).to_dict()
        case CreateWordbank():
            wordbank = await engine.create_wordbank(command.name, command.language, command.code)
            return wordbank.to_dict()
        case ImportWordbankWords():
            added = await engine.import_wordbank_words(command.wordbank_id, command.words)
            return {"added": added}
        case SetWordbankEnabled():
            wordbank = await engine.set_wordbank_enabled(command.wordbank_id, command.enabled)
            return wordbank.to_dict()
        case ListWordbanks():
            return [w.to_dict() for w in await engine.list_wordbanks(command.language)]
        case _:
            assert_never(command)


async def handle_message(engine: VocabTrace, message: Any) -> dict:
    """Parse and dispatch a message, wrapping the outcome in an envelope.

    Returns:
        {"ok": True, "data": ...} or {"ok": False, "error": {...}}
    """
    try:
        command = parse_command(message)
        data = await dispatch(engine, command)
    except VocabTraceError as e:
        logger.debug(f"Command failed: {e}")
        return {"ok": False, "error": e.to_payload()}
    return {"ok": True, "data": data}
