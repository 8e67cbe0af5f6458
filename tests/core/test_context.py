"""
Tests for TranslationContext state, restore and serialization.
"""

from idbridge.core.context import TranslationContext, create_isolated_context
from idbridge.core.translator import to_numeric_id


class TestContextState:
    """Fresh, populated and persistence flags."""

    def test_fresh_then_populated(self, context):
        assert context.state == "fresh"
        to_numeric_id("a", context)
        assert context.state == "populated"

    def test_persistence_follows_owner_hook(self, context):
        assert context.is_persistent is False
        context.on_change = lambda: None
        assert context.is_persistent is True

    def test_find_numeric_id(self, mail_context):
        assert mail_context.find_numeric_id("cal-home") == 3
        assert mail_context.find_numeric_id("nope") is None

    def test_isolated_contexts_share_nothing(self):
        a = create_isolated_context()
        b = create_isolated_context()
        to_numeric_id("only-in-a", a)

        assert b.id_map == {}
        assert a.is_persistent is False
        assert to_numeric_id("only-in-b", b) == 1


class TestRestore:
    """Restoring tolerates malformed snapshot pieces."""

    def test_restore_drops_malformed_pieces(self, context):
        restored = context.restore(
            entries=[[1, "a"], [0, "b"], ["x", "c"], [2, ""], "bad", [5, "e"]],
            next_numeric_id=1,
            free_ids=[1, 3, 3, -1, "2"],
            ref_counts=[[1, 2], [9, 1], [5, 0], "bad"],
        )

        assert restored == 2
        assert context.id_map == {1: "a", 5: "e"}
        # 1 is mapped, 3 duplicated, -1 and "2" invalid
        assert context.free_ids == [3]
        assert context.ref_counts == {1: 2}
        assert context.next_numeric_id == 6

    def test_restore_keeps_higher_counter(self, context):
        context.restore(entries=[[1, "a"]], next_numeric_id=40)
        assert context.next_numeric_id == 40

    def test_restore_does_not_notify_owner(self, context, change_calls):
        context.restore(entries=[[1, "a"]], next_numeric_id=2)
        assert change_calls == []

    def test_restore_replaces_previous_state(self, mail_context):
        mail_context.restore(entries=[[2, "z"]], next_numeric_id=3)
        assert mail_context.id_map == {2: "z"}

    def test_restored_free_ids_are_reused(self, context):
        context.restore(entries=[[1, "a"]], next_numeric_id=4, free_ids=[2, 3])
        assert to_numeric_id("b", context) == 3
        assert to_numeric_id("c", context) == 2
        assert to_numeric_id("d", context) == 4


class TestSerialization:
    """Round trip through plain dicts."""

    def test_to_dict_uses_pair_lists(self, mail_context):
        mail_context.free_ids.append(9)
        mail_context.ref_counts[2] = 1

        data = mail_context.to_dict()

        assert data["entries"][0] == [1, "imap://alice@mail.example/INBOX:msg-1001"]
        assert data["free_ids"] == [9]
        assert data["ref_counts"] == [[2, 1]]

    def test_from_dict(self, mail_context):
        mail_context.ref_counts[2] = 1

        restored = TranslationContext.from_dict(mail_context.to_dict())

        assert restored.id_map == mail_context.id_map
        assert restored.next_numeric_id == mail_context.next_numeric_id
        assert restored.ref_counts == {2: 1}

    def test_from_empty_dict(self):
        restored = TranslationContext.from_dict({})
        assert restored.state == "fresh"
