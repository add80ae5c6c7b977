"""vocabtrace CLI entry point.

Commands:
    init      Create the vocabulary database
    scan      Scan page text for known and promotable words
    record    Record a single word encounter
    rate      Rate a word known / familiar / unknown
    trace     Start or stop tracing a word
    review    Draw review cards
    cleanup   Remove stale low-count stats and their encounters
    stats     Show vocabulary statistics
    vocab     List, add and delete vocabulary
    traces    Save, list and delete traces
    noise     Sync and unlock noise words
    wordbank  Manage wordbanks
    settings  View/edit engine settings
    config    View/edit CLI configuration
    exec      Run a JSON command message
"""

import asyncio
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.table import Table

from vocabtrace import __version__
from vocabtrace.api import VocabTrace
from vocabtrace.app_config import DEFAULT_APP, AppConfig
from vocabtrace.commands import handle_message
from vocabtrace.constants import DEFAULT_CARD_COUNT, DEFAULT_LANGUAGE, ExitCode
from vocabtrace.dictionary import Dictionary
from vocabtrace.exceptions import NotFoundError, ValidationError, VocabTraceError
from vocabtrace.models import (
    EncounterSource,
    PageContext,
    Rating,
    ReviewMode,
    VocabFilter,
)
from vocabtrace.utils.config import get_config_path, get_value, load_config, parse_value, save_config, set_value

console = Console()

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _resolve_db(app: Optional[str], db_path: Optional[str], cfg: dict) -> Path:
    """Explicit --db wins, then --app, then the config file, then the default app."""
    if db_path:
        return Path(db_path)
    if app:
        return AppConfig(app).vocab_db
    configured = get_value(cfg, "general.db_path")
    if configured:
        return Path(configured).expanduser()
    return DEFAULT_APP.vocab_db


def _run(ctx: click.Context, func: Callable[[VocabTrace], Awaitable[Any]]) -> Any:
    """Open the engine, run one coroutine against it and map errors to exit codes."""
    obj = ctx.find_root().obj

    async def runner():
        dictionary = Dictionary.load(obj["dict_path"]) if obj.get("dict_path") else None
        async with VocabTrace(obj["db_path"], dictionary=dictionary) as engine:
            return await func(engine)

    try:
        return asyncio.run(runner())
    except NotFoundError as e:
        console.print(f"[red]Not found: {e}[/red]")
        sys.exit(ExitCode.NOT_FOUND)
    except ValidationError as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        sys.exit(ExitCode.INVALID_INPUT)
    except VocabTraceError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(ExitCode.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(ExitCode.KEYBOARD_INTERRUPT)


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def _configured(ctx: click.Context, key: str, fallback: Any) -> Any:
    """Read a default from the user config loaded by main."""
    return get_value(ctx.find_root().obj.get("config", {}), key, fallback)


def _language(ctx: click.Context, language: Optional[str]) -> str:
    return language or _configured(ctx, "general.language", DEFAULT_LANGUAGE)


@click.group()
@click.version_option(version=__version__, prog_name="vocabtrace")
@click.option("--db", "db_path", type=click.Path(dir_okay=False), help="Vocabulary database path")
@click.option("--app", help="App name for isolated database (e.g., reader)")
@click.option("--dict", "dict_path", type=click.Path(exists=True, dir_okay=False), help="Dictionary file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    db_path: Optional[str],
    app: Optional[str],
    dict_path: Optional[str],
    debug: bool,
) -> None:
    """vocabtrace - Learn vocabulary from what you read."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    cfg = load_config()
    ctx.obj["config"] = cfg
    ctx.obj["db_path"] = _resolve_db(app, db_path, cfg)
    ctx.obj["dict_path"] = dict_path or get_value(cfg, "general.dictionary_path") or None


# ============================================================================
# CORE COMMANDS
# ============================================================================


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the vocabulary database with default settings."""

    async def work(engine: VocabTrace):
        return engine.db_path

    path = _run(ctx, work)
    console.print(f"[green]Initialized vocabulary database: {path}[/green]")


@main.command()
@click.argument("source", default="-")
@click.option("--url", required=True, help="Page URL the text came from")
@click.option("--title", help="Page title")
@click.option("--language", help="Word language (default: general.language)")
@click.option("--no-record", is_flag=True, help="Don't record encounters or auto-trace")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def scan(
    ctx: click.Context,
    source: str,
    url: str,
    title: Optional[str],
    language: Optional[str],
    no_record: bool,
    as_json: bool,
) -> None:
    """Scan page text read from SOURCE (a file, or - for stdin).

    Examples:

        vocabtrace scan article.txt --url https://example.com/a

        cat page.txt | vocabtrace scan --url https://example.com/b --no-record
    """
    language = _language(ctx, language)
    text = _read_input(source)
    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
    page = PageContext(url=url, title=title)

    result = _run(
        ctx,
        lambda engine: engine.scan_tokens(
            [], page, language=language, sentences=sentences, record=not no_record
        ),
    )

    if as_json:
        _print_json(result.to_dict())
        return

    table = Table(title=f"Words on {page.host or url}")
    table.add_column("Word", style="cyan")
    table.add_column("On page", justify="right")
    table.add_column("Seen", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    for match in sorted(result.matches, key=lambda m: -m.present_count):
        style = "bold" if match.priority == "high" else None
        table.add_row(
            match.surface or match.lemma,
            str(match.present_count),
            str(match.encounter_count),
            f"{match.weighted_score:.1f}",
            match.source,
            style=style,
        )
    console.print(table)
    console.print(f"Coverage: {result.stats.coverage}%  Mastered: {result.stats.mastered}")
    if result.promoted:
        console.print(f"[green]Promoted:[/green] {', '.join(result.promoted)}")
    if result.auto_traced:
        console.print(f"[green]Auto-traced {len(result.auto_traced)} words[/green]")


@main.command()
@click.argument("word")
@click.option(
    "--source",
    type=click.Choice([s.value for s in EncounterSource]),
    default=EncounterSource.DICTIONARY_LOOKUP.value,
    show_default=True,
)
@click.option("--url", required=True, help="Page URL")
@click.option("--title", help="Page title")
@click.option("--sentence", help="Context sentence")
@click.option("--language", help="Word language (default: general.language)")
@click.pass_context
def record(
    ctx: click.Context,
    word: str,
    source: str,
    url: str,
    title: Optional[str],
    sentence: Optional[str],
    language: Optional[str],
) -> None:
    """Record an encounter with WORD."""
    language = _language(ctx, language)
    page = PageContext(url=url, title=title, sentence=sentence)
    encounter = _run(
        ctx, lambda engine: engine.record_encounter(source, page, word=word, language=language)
    )
    console.print(f"Recorded {source} encounter for {word} ({encounter.vocab_id})")


@main.command()
@click.argument("vocab_id")
@click.argument("rating", type=click.Choice([r.value for r in Rating]))
@click.pass_context
def rate(ctx: click.Context, vocab_id: str, rating: str) -> None:
    """Rate VOCAB_ID as known, familiar or unknown."""
    result = _run(ctx, lambda engine: engine.rate_word(vocab_id, rating))
    status = "[green]known[/green]" if result.is_known else "learning"
    console.print(f"Score {result.new_score:.1f} ({status})")


@main.command()
@click.argument("vocab_id")
@click.option("--off", is_flag=True, help="Stop tracing")
@click.pass_context
def trace(ctx: click.Context, vocab_id: str, off: bool) -> None:
    """Start (or stop) tracing VOCAB_ID."""
    result = _run(ctx, lambda engine: engine.toggle_trace(vocab_id, not off))
    state = "Tracing" if result.is_traced else "Not tracing"
    console.print(f"{state} {vocab_id} ({result.active_trace_count} active)")


@main.command()
@click.option("-n", "--count", type=click.IntRange(min=0), help="Cards to draw (default: review.count)")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in ReviewMode]),
    help="auto = top priority, shuffle = weighted random (default: review.mode)",
)
@click.option("--seed", type=int, help="Seed for a repeatable shuffle")
@click.option("--traced-only", is_flag=True, help="Only traced words")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def review(
    ctx: click.Context,
    count: Optional[int],
    mode: Optional[str],
    seed: Optional[int],
    traced_only: bool,
    as_json: bool,
) -> None:
    """Draw review cards."""
    if count is None:
        count = int(_configured(ctx, "review.count", DEFAULT_CARD_COUNT))
    mode = mode or _configured(ctx, "review.mode", ReviewMode.SHUFFLE.value)
    cards = _run(
        ctx,
        lambda engine: engine.draw_review_cards(count, mode, seed=seed, traced_only=traced_only),
    )

    if as_json:
        _print_json([card.to_dict() for card in cards])
        return
    if not cards:
        console.print("[yellow]Nothing to review[/yellow]")
        return

    table = Table(title="Review Cards")
    table.add_column("Word", style="cyan")
    table.add_column("Meaning")
    table.add_column("Score", justify="right")
    table.add_column("Priority", justify="right")
    table.add_column("Context", style="dim", max_width=50)
    for card in cards:
        word = f"{card.surface} *" if card.is_traced else card.surface
        table.add_row(
            word,
            card.meaning,
            f"{card.weighted_score:.1f}",
            f"{card.priority:.2f}",
            card.context_sentence or "",
        )
    console.print(table)


@main.command()
@click.option("--age-days", type=int, help="Age cutoff in days (default from settings)")
@click.option("--min-count", type=int, help="Minimum sightings to keep (default from settings)")
@click.option("--dry-run", is_flag=True, help="Report without deleting")
@click.pass_context
def cleanup(ctx: click.Context, age_days: Optional[int], min_count: Optional[int], dry_run: bool) -> None:
    """Remove stale lemma stats and the encounters that came with them."""
    result = _run(ctx, lambda engine: engine.cleanup_stale(age_days, min_count, dry_run))
    prefix = "[bold yellow]DRY RUN[/bold yellow] would delete" if dry_run else "Deleted"
    console.print(
        f"{prefix} {result.deleted_lemma_stats} stats, {result.deleted_encounters} encounters, "
        f"{result.deleted_vocabulary} words"
    )
    if result.skipped_rows:
        console.print(f"[yellow]Skipped {result.skipped_rows} malformed rows[/yellow]")


@main.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show vocabulary statistics."""
    result = _run(ctx, lambda engine: engine.get_statistics())

    table = Table(title="Vocabulary Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in result.to_dict().items():
        table.add_row(key.replace("_", " ").title(), str(value))
    console.print(table)


# ============================================================================
# VOCAB COMMANDS
# ============================================================================


@main.group()
def vocab() -> None:
    """Vocabulary entries."""
    pass


@vocab.command("list")
@click.option("--filter", "vocab_filter", type=click.Choice([f.value for f in VocabFilter]), default="all")
@click.option("--search", help="Substring of lemma or surface")
@click.option("--limit", default=50, show_default=True)
@click.option("--offset", default=0)
@click.pass_context
def vocab_list(ctx: click.Context, vocab_filter: str, search: Optional[str], limit: int, offset: int) -> None:
    """List vocabulary, most recently updated first."""
    entries, total = _run(ctx, lambda engine: engine.list_vocab(vocab_filter, search, limit, offset))

    table = Table(title=f"Vocabulary ({total} total)")
    table.add_column("ID", style="dim")
    table.add_column("Word", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("State")
    for entry in entries:
        if entry.score_locked:
            state = "noise"
        elif entry.is_known:
            state = "known"
        elif entry.is_traced:
            state = "traced"
        else:
            state = ""
        table.add_row(entry.vocab_id, entry.surface or entry.lemma, f"{entry.familiarity_score:.1f}", state)
    console.print(table)


@vocab.command("add")
@click.argument("lemma")
@click.option("--meaning", help="Short meaning")
@click.option("--language", help="Word language (default: general.language)")
@click.pass_context
def vocab_add(ctx: click.Context, lemma: str, meaning: Optional[str], language: Optional[str]) -> None:
    """Add LEMMA to the vocabulary (restores a deleted entry)."""
    language = _language(ctx, language)
    entry = _run(ctx, lambda engine: engine.upsert_vocab(lemma, meaning=meaning, language=language))
    console.print(f"[green]Added {entry.lemma} ({entry.vocab_id})[/green]")


@vocab.command("show")
@click.argument("vocab_id")
@click.option("--limit", default=20, show_default=True)
@click.option("--host", help="Only encounters on this host")
@click.option("--page-url", help="Only encounters on this page")
@click.pass_context
def vocab_show(
    ctx: click.Context, vocab_id: str, limit: int, host: Optional[str], page_url: Optional[str]
) -> None:
    """Show an entry and its latest encounters."""

    async def work(engine: VocabTrace):
        entry = await engine.get_vocab(vocab_id)
        encounters, total = await engine.get_word_encounters(
            vocab_id, limit, page_host=host, page_url=page_url
        )
        return entry, encounters, total

    entry, encounters, total = _run(ctx, work)
    _print_json(entry.to_dict())

    table = Table(title=f"Encounters ({total} total)")
    table.add_column("When", style="dim")
    table.add_column("Source")
    table.add_column("Page")
    for encounter in encounters:
        table.add_row(
            encounter.created_at.isoformat(timespec="seconds") if encounter.created_at else "",
            encounter.source,
            encounter.page_host or encounter.page_url,
        )
    console.print(table)


@vocab.command("delete")
@click.argument("vocab_id")
@click.option("--hard", is_flag=True, help="Remove the entry and its encounters")
@click.pass_context
def vocab_delete(ctx: click.Context, vocab_id: str, hard: bool) -> None:
    """Delete VOCAB_ID (soft by default)."""
    result = _run(ctx, lambda engine: engine.delete_vocab(vocab_id, hard))
    if result.deleted:
        console.print(f"[green]Deleted {vocab_id}[/green]")
    else:
        console.print(f"[yellow]Nothing to delete for {vocab_id}[/yellow]")


# ============================================================================
# TRACE COMMANDS
# ============================================================================


@main.group()
def traces() -> None:
    """Saved traces (words picked out while reading)."""
    pass


@traces.command("save")
@click.argument("text")
@click.option("--url", required=True, help="Page URL")
@click.option("--title", help="Page title")
@click.option("--sentence", help="Context sentence")
@click.option("--language", help="Word language (default: general.language)")
@click.pass_context
def traces_save(
    ctx: click.Context,
    text: str,
    url: str,
    title: Optional[str],
    sentence: Optional[str],
    language: Optional[str],
) -> None:
    """Save TEXT as a trace and start tracing its word."""
    language = _language(ctx, language)
    page = PageContext(url=url, title=title, sentence=sentence)
    saved = _run(ctx, lambda engine: engine.save_trace(text, page, language=language))
    console.print(f"[green]Saved trace {saved.trace_id} for {saved.lemma}[/green]")


@traces.command("list")
@click.option("--search", help="Substring of the saved text or sentence")
@click.option("--limit", default=50, show_default=True)
@click.option("--offset", default=0)
@click.pass_context
def traces_list(ctx: click.Context, search: Optional[str], limit: int, offset: int) -> None:
    """List saved traces, newest first."""
    items, total = _run(ctx, lambda engine: engine.get_traces(limit, offset, search))

    table = Table(title=f"Traces ({total} total)")
    table.add_column("ID", style="dim")
    table.add_column("Text", style="cyan")
    table.add_column("Page")
    table.add_column("Saved", style="dim")
    for item in items:
        table.add_row(
            item.trace_id,
            item.source_text,
            item.page_host or item.page_url,
            item.created_at.isoformat(timespec="seconds") if item.created_at else "",
        )
    console.print(table)


@traces.command("delete")
@click.argument("trace_id")
@click.pass_context
def traces_delete(ctx: click.Context, trace_id: str) -> None:
    """Delete TRACE_ID."""
    result = _run(ctx, lambda engine: engine.delete_trace(trace_id))
    if result.deleted:
        console.print(f"[green]Deleted trace {trace_id}[/green]")
    else:
        console.print(f"[yellow]Nothing to delete for {trace_id}[/yellow]")


# ============================================================================
# NOISE COMMANDS
# ============================================================================


@main.group()
def noise() -> None:
    """Noise words (function words kept out of learning)."""
    pass


@noise.command("sync")
@click.option("--force", is_flag=True, help="Sync even if the noise settings are unchanged")
@click.option("--dry-run", is_flag=True, help="Report the plan without writing")
@click.pass_context
def noise_sync(ctx: click.Context, force: bool, dry_run: bool) -> None:
    """Lock noise words and release words no longer in the noise set."""
    result = _run(ctx, lambda engine: engine.sync_noise_words(force=force, dry_run=dry_run))
    if result.skipped:
        console.print("[dim]Noise settings unchanged, nothing to do[/dim]")
        return
    prefix = "[bold yellow]DRY RUN[/bold yellow] " if dry_run else ""
    console.print(
        f"{prefix}Locked {result.locked}, unlocked {result.unlocked}, "
        f"created {result.created} ({result.target_size} noise words)"
    )


@noise.command("unlock")
@click.argument("vocab_id")
@click.pass_context
def noise_unlock(ctx: click.Context, vocab_id: str) -> None:
    """Release the noise lock on VOCAB_ID."""
    entry = _run(ctx, lambda engine: engine.unlock_noise_word(vocab_id))
    console.print(f"[green]Unlocked {entry.lemma}[/green]")


# ============================================================================
# WORDBANK COMMANDS
# ============================================================================


@main.group()
def wordbank() -> None:
    """Wordbanks (curated word lists)."""
    pass


@wordbank.command("list")
@click.option("--language", help="Only wordbanks for this language")
@click.pass_context
def wordbank_list(ctx: click.Context, language: Optional[str]) -> None:
    """List wordbanks."""
    wordbanks = _run(ctx, lambda engine: engine.list_wordbanks(language))

    table = Table(title="Wordbanks")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Code")
    table.add_column("Words", justify="right")
    table.add_column("Enabled")
    for wb in wordbanks:
        table.add_row(
            wb.wordbank_id,
            wb.name,
            wb.code,
            str(wb.word_count),
            "[green]yes[/green]" if wb.enabled else "[dim]no[/dim]",
        )
    console.print(table)


@wordbank.command("create")
@click.argument("name")
@click.option("--code", default="custom", show_default=True, help="Wordbank kind (cet4, daily, noise, ...)")
@click.option("--language", help="Word language (default: general.language)")
@click.pass_context
def wordbank_create(ctx: click.Context, name: str, code: str, language: Optional[str]) -> None:
    """Create a wordbank called NAME."""
    language = _language(ctx, language)
    wb = _run(ctx, lambda engine: engine.create_wordbank(name, language, code))
    console.print(f"[green]Created wordbank {wb.name} ({wb.wordbank_id})[/green]")


@wordbank.command("import")
@click.argument("wordbank_id")
@click.argument("source", default="-")
@click.pass_context
def wordbank_import(ctx: click.Context, wordbank_id: str, source: str) -> None:
    """Import words into WORDBANK_ID from SOURCE.

    SOURCE holds one word per line, or a JSON list of words or of
    {"lemma", "surface", "rank"} objects.
    """
    text = _read_input(source)
    try:
        words = json.loads(text)
    except json.JSONDecodeError:
        words = [line.strip() for line in text.splitlines() if line.strip()]
    if not isinstance(words, list):
        console.print("[red]Expected a JSON list or one word per line[/red]")
        sys.exit(ExitCode.INVALID_INPUT)

    added = _run(ctx, lambda engine: engine.import_wordbank_words(wordbank_id, words))
    console.print(f"[green]Imported {added} words[/green]")


@wordbank.command("enable")
@click.argument("wordbank_id")
@click.pass_context
def wordbank_enable(ctx: click.Context, wordbank_id: str) -> None:
    """Enable WORDBANK_ID."""
    wb = _run(ctx, lambda engine: engine.set_wordbank_enabled(wordbank_id, True))
    console.print(f"Enabled {wb.name}")


@wordbank.command("disable")
@click.argument("wordbank_id")
@click.pass_context
def wordbank_disable(ctx: click.Context, wordbank_id: str) -> None:
    """Disable WORDBANK_ID."""
    wb = _run(ctx, lambda engine: engine.set_wordbank_enabled(wordbank_id, False))
    console.print(f"Disabled {wb.name}")


# ============================================================================
# SETTINGS AND CONFIG COMMANDS
# ============================================================================


@main.group()
def settings() -> None:
    """Engine settings stored in the database."""
    pass


@settings.command("show")
@click.pass_context
def settings_show(ctx: click.Context) -> None:
    """Show engine settings."""
    result = _run(ctx, lambda engine: engine.get_settings())
    _print_json(result.to_dict())


@settings.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def settings_set(ctx: click.Context, key: str, value: str) -> None:
    """Set an engine setting.

    KEY is a setting name (e.g., autoTracePoolSize)
    VALUE is the new value; lists are given as JSON (e.g., '["the", "of"]')
    """
    try:
        parsed_value = json.loads(value)
    except json.JSONDecodeError:
        parsed_value = parse_value(value)

    _run(ctx, lambda engine: engine.update_settings({key: parsed_value}))
    console.print(f"[green]Set {key} = {parsed_value}[/green]")


@main.group()
def config() -> None:
    """View and edit configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Show current configuration."""
    cfg = load_config()
    console.print(f"[dim]Config file: {get_config_path()}[/dim]\n")
    console.print_json(json.dumps(cfg, indent=2))


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Set a configuration value.

    KEY is a dot-separated path (e.g., review.count)
    VALUE is the new value
    """
    cfg = load_config()
    parsed_value = parse_value(value)
    set_value(cfg, key, parsed_value)
    save_config(cfg)
    console.print(f"[green]Set {key} = {parsed_value}[/green]")


@config.command("get")
@click.argument("key")
def config_get(key: str) -> None:
    """Get a configuration value.

    KEY is a dot-separated path (e.g., general.db_path)
    """
    cfg = load_config()
    value = get_value(cfg, key)

    if value is None:
        console.print(f"[yellow]Key '{key}' not found[/yellow]")
        sys.exit(ExitCode.GENERAL_ERROR)

    console.print(f"{key} = {json.dumps(value)}")


# ============================================================================
# EXEC COMMAND
# ============================================================================


@main.command("exec")
@click.argument("message", default="-")
@click.pass_context
def exec_command(ctx: click.Context, message: str) -> None:
    """Run a JSON command MESSAGE (or - to read it from stdin).

    Example:

        vocabtrace exec '{"type": "GET_STATISTICS"}'
    """
    raw = sys.stdin.read() if message == "-" else message
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON: {e}[/red]")
        sys.exit(ExitCode.INVALID_INPUT)

    envelope = _run(ctx, lambda engine: handle_message(engine, parsed))
    _print_json(envelope)
    if not envelope["ok"]:
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
