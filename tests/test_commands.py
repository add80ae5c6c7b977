"""Tests for command parsing and dispatch."""

import asyncio

import pytest

from vocabtrace.commands import (
    COMMAND_TYPES,
    DrawCard,
    GetVocabList,
    GetWordEncounters,
    RecordEncounter,
    SaveTrace,
    UpdateSettings,
    handle_message,
    parse_command,
)
from vocabtrace.exceptions import ValidationError


class TestParseCommand:
    """Tests for parse_command."""

    def test_camel_case_payload(self):
        command = parse_command(
            {
                "type": "RECORD_ENCOUNTER",
                "payload": {"source": "lookup", "pageUrl": "https://a.com", "word": "quixotic"},
            }
        )
        assert command == RecordEncounter(source="lookup", page_url="https://a.com", word="quixotic")

    def test_defaults_applied(self):
        assert parse_command({"type": "DRAW_CARD"}) == DrawCard()
        assert parse_command({"type": "GET_VOCAB_LIST", "payload": {"filter": "noise"}}) == GetVocabList(
            filter="noise"
        )

    def test_lists_become_tuples(self):
        command = parse_command({"type": "DRAW_CARD", "payload": {"excludeIds": ["a", "b"]}})
        assert command.exclude_ids == ("a", "b")

    def test_dict_payload(self):
        command = parse_command(
            {"type": "UPDATE_SETTINGS", "payload": {"preferences": {"autoTracePoolSize": 5}}}
        )
        assert command == UpdateSettings(preferences={"autoTracePoolSize": 5})

    def test_missing_required_field(self):
        with pytest.raises(ValidationError, match="vocabId is required"):
            parse_command({"type": "RATE_WORD", "payload": {"rating": "known"}})

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            parse_command({"type": "LAUNCH_ROCKET"})

    @pytest.mark.parametrize(
        "payload",
        [
            {"count": "ten"},
            {"count": True},
            {"tracedOnly": "yes"},
            {"excludeIds": "abc"},
            {"excludeIds": [1, 2]},
        ],
    )
    def test_bad_types(self, payload):
        with pytest.raises(ValidationError):
            parse_command({"type": "DRAW_CARD", "payload": payload})

    def test_message_must_be_object(self):
        with pytest.raises(ValidationError):
            parse_command(["DRAW_CARD"])
        with pytest.raises(ValidationError):
            parse_command({"type": "DRAW_CARD", "payload": [1]})

    def test_trace_payload(self):
        command = parse_command(
            {
                "type": "SAVE_TRACE",
                "payload": {
                    "sourceText": "laconic",
                    "pageUrl": "https://a.com",
                    "contextSentence": "A laconic reply.",
                },
            }
        )
        assert command == SaveTrace(
            source_text="laconic", page_url="https://a.com", context_sentence="A laconic reply."
        )

    def test_encounter_filters(self):
        command = parse_command(
            {"type": "GET_WORD_ENCOUNTERS", "payload": {"vocabId": "v1", "pageHost": "a.com"}}
        )
        assert command == GetWordEncounters(vocab_id="v1", page_host="a.com")

    def test_every_type_registered(self):
        assert len(COMMAND_TYPES) == 26
        assert "SCAN_PAGE_WORDS" in COMMAND_TYPES


class TestHandleMessage:
    """Tests for the response envelope."""

    def test_ok_envelope(self, engine):
        response = asyncio.run(handle_message(engine, {"type": "GET_STATISTICS"}))
        assert response["ok"] is True
        assert response["data"]["total_vocabulary"] == 0

    def test_validation_envelope(self, engine):
        response = asyncio.run(handle_message(engine, {"type": "RATE_WORD", "payload": {}}))
        assert response == {
            "ok": False,
            "error": {"code": "VALIDATION_ERROR", "message": "vocabId is required", "retryable": False},
        }

    def test_not_found_envelope(self, engine):
        response = asyncio.run(
            handle_message(engine, {"type": "GET_VOCAB", "payload": {"vocabId": "missing"}})
        )
        assert response["ok"] is False
        assert response["error"]["code"] == "NOT_FOUND"

    def test_word_lifecycle(self, engine):
        """Test a word can be added, scanned, rated and listed through messages."""
        async def scenario():
            added = await handle_message(
                engine, {"type": "UPSERT_VOCAB", "payload": {"lemma": "laconic", "meaning": "terse"}}
            )
            vocab_id = added["data"]["vocab_id"]
            scanned = await handle_message(
                engine,
                {
                    "type": "SCAN_PAGE_WORDS",
                    "payload": {"pageUrl": "https://a.com/x", "tokens": ["A", "laconic", "reply"]},
                },
            )
            rated = await handle_message(
                engine, {"type": "RATE_WORD", "payload": {"vocabId": vocab_id, "rating": "familiar"}}
            )
            listed = await handle_message(engine, {"type": "GET_VOCAB_LIST"})
            return scanned, rated, listed

        scanned, rated, listed = asyncio.run(scenario())

        assert [m["lemma"] for m in scanned["data"]["matches"]] == ["laconic"]
        assert rated["data"]["new_score"] == pytest.approx(3.1)
        assert listed["data"]["total"] == 1
        assert listed["data"]["items"][0]["meaning"] == "terse"

    def test_wordbank_messages(self, engine):
        async def scenario():
            created = await handle_message(
                engine, {"type": "CREATE_WORDBANK", "payload": {"name": "Custom"}}
            )
            wordbank_id = created["data"]["wordbank_id"]
            imported = await handle_message(
                engine,
                {
                    "type": "IMPORT_WORDBANK_WORDS",
                    "payload": {"wordbankId": wordbank_id, "words": ["abandon", {"lemma": "ability"}]},
                },
            )
            disabled = await handle_message(
                engine,
                {"type": "SET_WORDBANK_ENABLED", "payload": {"wordbankId": wordbank_id, "enabled": False}},
            )
            return imported, disabled

        imported, disabled = asyncio.run(scenario())
        assert imported["data"] == {"added": 2}
        assert disabled["data"]["enabled"] is False

    def test_settings_messages(self, engine):
        async def scenario():
            await handle_message(
                engine,
                {"type": "UPDATE_SETTINGS", "payload": {"preferences": {"promotionMinCount": 4}}},
            )
            return await handle_message(engine, {"type": "GET_SETTINGS"})

        response = asyncio.run(scenario())
        assert response["data"]["promotionMinCount"] == 4

    def test_trace_messages(self, engine):
        async def scenario():
            saved = await handle_message(
                engine,
                {"type": "SAVE_TRACE", "payload": {"sourceText": "Laconic", "pageUrl": "https://a.com/x"}},
            )
            listed = await handle_message(engine, {"type": "GET_TRACES"})
            deleted = await handle_message(
                engine, {"type": "DELETE_TRACE", "payload": {"traceId": saved["data"]["trace_id"]}}
            )
            traced = await handle_message(engine, {"type": "GET_TRACED_WORDS"})
            return saved, listed, deleted, traced

        saved, listed, deleted, traced = asyncio.run(scenario())

        assert saved["ok"] is True
        assert saved["data"]["lemma"] == "laconic"
        assert saved["data"]["vocab_id"] is not None
        assert listed["data"]["total"] == 1
        assert deleted["data"]["deleted"] is True
        assert traced["data"] == []
