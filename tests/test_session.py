"""
Tests for TranslationSession - the main context plus its persistence.
"""

import json

from idbridge.core.codec import encode_text
from idbridge.memory.turns import ChatMeta, Turn
from idbridge.observability.session_logger import SessionLogger
from idbridge.session import TranslationSession
from idbridge.storage.store import JsonFileIdMapStore, MemoryIdMapStore


class TestLifecycle:
    """Open, flush and close against a store."""

    def test_open_restores_snapshot(self, seeded_store):
        session = TranslationSession(seeded_store).open()

        assert session.to_real_id(4) == "msg-D"
        assert session.context.free_ids == [3]
        assert session.context.ref_counts == {1: 1, 2: 2, 4: 1}
        # Freed id 3 is handed out first
        assert session.to_numeric_id("msg-E") == 3

    def test_failed_load_starts_fresh(self, seeded_store):
        seeded_store.fail_loads = True

        session = TranslationSession(seeded_store).open()

        assert session.context.state == "fresh"
        assert session.to_numeric_id("msg-A") == 1

    def test_unexpected_load_error_starts_fresh(self):
        class BrokenStore(MemoryIdMapStore):
            def load(self):
                raise RuntimeError("bad disk")

        session = TranslationSession(BrokenStore()).open()

        assert session.context.state == "fresh"
        assert session.to_numeric_id("msg-A") == 1

    def test_close_flushes_pending_changes(self, memory_store):
        session = TranslationSession(memory_store).open()
        session.to_numeric_id("msg-A")
        assert session.queue.pending is True

        assert session.close() is True
        assert memory_store.snapshot.entries == [(1, "msg-A")]

    def test_context_manager(self, tmp_path):
        path = tmp_path / "id_map.json"
        with TranslationSession(JsonFileIdMapStore(path)) as session:
            session.encode("unique_id: imap://a@x/INBOX:1")

        with TranslationSession(JsonFileIdMapStore(path)) as reopened:
            assert reopened.to_real_id(1) == "imap://a@x/INBOX:1"
            assert reopened.encode("unique_id: imap://a@x/INBOX:2") == "unique_id: 2"

    def test_save_failure_is_retried(self, memory_store):
        session = TranslationSession(memory_store).open()
        memory_store.fail_saves = True
        session.to_numeric_id("msg-A")

        assert session.flush() is False
        assert session.queue.pending is True

        memory_store.fail_saves = False
        session.to_numeric_id("msg-B")
        assert session.flush() is True
        assert memory_store.snapshot.entries == [(1, "msg-A"), (2, "msg-B")]

    def test_poll_respects_debounce(self, memory_store):
        clock_now = [0.0]
        session = TranslationSession(memory_store, debounce_seconds=1.0, clock=lambda: clock_now[0]).open()
        session.to_numeric_id("msg-A")

        assert session.poll() is False
        clock_now[0] = 2.0
        assert session.poll() is True
        assert memory_store.save_count == 1


class TestTurnPath:
    """Encode, record turns, evict, reclaim."""

    def test_eviction_reclaims_ids(self, memory_store):
        session = TranslationSession(memory_store).open()
        turns: list[Turn] = []
        meta = ChatMeta()

        assert session.encode("unique_id: m-A") == "unique_id: 1"
        assert session.encode("unique_id: m-B") == "unique_id: 2"

        t1 = Turn.create("assistant", "Found [Email](1)")
        session.record_turn(t1, turns, meta, max_exchanges=1)
        session.record_turn(Turn.create("user", "and [Email](2)?"), turns, meta, max_exchanges=1)
        evicted = session.record_turn(Turn.create("assistant", "[Email](2) is from Bob"), turns, meta, max_exchanges=1)

        assert t1.refs == [1]
        assert evicted == [t1]
        assert session.context.id_map == {2: "m-B"}
        assert session.context.free_ids == [1]
        assert session.context.ref_counts == {2: 2}

        assert session.encode("unique_id: m-C") == "unique_id: 1"
        assert session.decode("[Email](1)") == "[Email](m-C)"

    def test_register_keeps_existing_refs(self, mail_context, memory_store):
        session = TranslationSession(memory_store)
        session.context.restore(entries=mail_context.entries(), next_numeric_id=7)
        turn = {"role": "assistant", "content": "[Email](1)", "_refs": [2]}

        assert session.register_turn(turn) == [2]
        assert session.context.ref_counts == {2: 1}

    def test_unregister_turn(self, memory_store):
        session = TranslationSession(memory_store).open()
        session.to_numeric_id("m-A")
        turn = {"role": "assistant", "content": "[Email](1)"}
        session.register_turn(turn)

        assert turn["_refs"] == [1]
        assert session.unregister_turn(turn) == 1
        assert session.context.id_map == {}

    def test_rebuild_sweeps_orphans_and_persists(self, seeded_store):
        session = TranslationSession(seeded_store).open()
        turns = [
            {"role": "assistant", "content": "[Email](1) and [Email](2)"},
            Turn.create("user", "what about [Email](2)?"),
        ]

        referenced, orphans = session.rebuild(turns)

        assert (referenced, orphans) == (2, 1)
        assert turns[0]["_refs"] == [1, 2]
        assert session.context.ref_counts == {1: 1, 2: 2}
        assert 4 not in session.context.id_map
        assert seeded_store.save_count == 1
        assert session.queue.pending is False

    def test_decode_tool_args(self, seeded_store):
        session = TranslationSession(seeded_store).open()
        assert session.decode_tool_args("email_read", {"unique_id": 2}) == {"unique_id": "msg-B"}

    def test_remap_and_reset(self, seeded_store):
        session = TranslationSession(seeded_store).open()

        assert session.remap_external_id("msg-A", "msg-A2") == 1
        assert session.to_real_id(1) == "msg-A2"

        session.reset()
        assert session.stats()["total_mappings"] == 0
        session.flush()
        assert seeded_store.snapshot.entries == []


class TestHeadless:
    """Isolated contexts and merging them back."""

    def test_headless_context_is_isolated(self, seeded_store):
        session = TranslationSession(seeded_store).open()

        with session.headless() as bg:
            assert encode_text("[Email](msg-new)", bg) == "[Email](1)"
            assert bg.is_persistent is False

        assert session.context.find_numeric_id("msg-new") is None

    def test_merge_from_headless(self, seeded_store):
        session = TranslationSession(seeded_store).open()

        with session.headless() as bg:
            draft = encode_text("[Email](msg-B) then [Email](msg-new)", bg)
        assert draft == "[Email](1) then [Email](2)"

        text = session.merge_from_headless(bg.entries(), draft)

        # msg-B already lives at 2; msg-new collides with 2 and gets the counter
        assert text == "[Email](2) then [Email](5)"
        assert session.queue.pending is True
        assert session.decode(text) == "[Email](msg-B) then [Email](msg-new)"

    def test_decode_headless(self, seeded_store):
        session = TranslationSession(seeded_store).open()

        with session.headless() as bg:
            draft = encode_text("[Email](msg-A)", bg)

        assert session.decode_headless(bg.entries(), draft) == "[Email](msg-A)"

    def test_merge_rewrites_loose_shapes(self, seeded_store):
        session = TranslationSession(seeded_store).open()

        with session.headless() as bg:
            encode_text("[Email](msg-new)", bg)

        text = session.merge_from_headless(bg.entries(), "archived (unique_id 1) and Email 1")

        assert text == "archived [Email](5) and [Email](5)"
        assert session.decode(text) == "archived [Email](msg-new) and [Email](msg-new)"


class TestEventLog:
    """Session events land in the JSONL log."""

    def test_events_written(self, memory_store, tmp_path):
        events = SessionLogger(session_id="t1", log_dir=tmp_path)
        session = TranslationSession(memory_store, events=events).open()
        session.to_numeric_id("m-A")
        session.register_turn({"role": "assistant", "content": "[Email](1)"})
        session.close()

        lines = (tmp_path / "idmap_t1.jsonl").read_text().splitlines()
        names = [json.loads(line)["event"] for line in lines]
        assert names == ["session_start", "restored", "turn_registered", "persisted", "session_end"]
