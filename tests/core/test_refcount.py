"""
Tests for per-turn reference counting and id reclamation.
"""

from idbridge.core.refcount import (
    build_ref_counts,
    cleanup_evicted_ids,
    register_turn_refs,
    turn_refs,
    unregister_turn_refs,
)
from idbridge.core.translator import to_numeric_id
from idbridge.memory.turns import Turn


def assert_invariants(context):
    assert not set(context.free_ids) & set(context.id_map)
    assert set(context.ref_counts) <= set(context.id_map)
    assert all(count >= 1 for count in context.ref_counts.values())


class TestTurnRefs:
    """Reading refs off a turn."""

    def test_reads_model_and_dict_shapes(self):
        assert turn_refs(Turn(role="user", refs=[1, 2])) == [1, 2]
        assert turn_refs({"role": "user", "_refs": [3]}) == [3]
        assert turn_refs({"role": "user", "refs": [4]}) == [4]
        assert turn_refs({"role": "user"}) == []
        assert turn_refs(None) == []


class TestRegistration:
    """Register and unregister turn refs."""

    def test_register_counts_each_turn(self, context):
        to_numeric_id("item-X", context)
        to_numeric_id("item-Y", context)

        register_turn_refs(Turn(role="assistant", refs=[1, 2]), context)
        register_turn_refs(Turn(role="user", refs=[2]), context)

        assert context.ref_counts == {1: 1, 2: 2}

    def test_register_skips_unmapped_ids(self, context):
        to_numeric_id("item-X", context)

        counted = register_turn_refs({"_refs": [1, 99]}, context)

        assert counted == 1
        assert context.ref_counts == {1: 1}

    def test_register_without_refs_is_silent(self, context, change_calls):
        assert register_turn_refs(Turn(role="user"), context) == 0
        assert change_calls == []


class TestReclamation:
    """Eviction frees ids whose last referencing turn is gone."""

    def test_unregister_frees_last_reference(self, context):
        to_numeric_id("item-X", context)
        to_numeric_id("item-Y", context)
        t1 = Turn(role="assistant", refs=[1, 2])
        t2 = Turn(role="user", refs=[2])
        register_turn_refs(t1, context)
        register_turn_refs(t2, context)

        freed = unregister_turn_refs(t1, context)

        assert freed == 1
        assert 1 not in context.id_map
        assert context.free_ids == [1]
        assert context.ref_counts == {2: 1}
        assert context.id_map[2] == "item-Y"

        # Freed id is reused before the counter grows
        assert to_numeric_id("item-Z", context) == 1
        assert context.next_numeric_id == 3
        assert_invariants(context)

    def test_unregister_unknown_turn_frees_nothing(self, mail_context):
        freed = unregister_turn_refs({"_refs": [1, 2]}, mail_context)

        assert freed == 0
        assert len(mail_context.id_map) == 6
        assert mail_context.free_ids == []

    def test_cleanup_batches_owner_notification(self, context, change_calls):
        for external_id in ("a", "b", "c"):
            to_numeric_id(external_id, context)
        turns = [{"_refs": [1]}, {"_refs": [2, 3]}, {"_refs": [3]}]
        for turn in turns:
            register_turn_refs(turn, context)
        change_calls.clear()

        freed = cleanup_evicted_ids(turns[:2], context)

        assert freed == 2
        assert len(change_calls) == 1
        assert context.id_map == {3: "c"}
        assert sorted(context.free_ids) == [1, 2]
        assert context.ref_counts == {3: 1}
        assert_invariants(context)

    def test_cleanup_nothing_evicted(self, context, change_calls):
        assert cleanup_evicted_ids([], context) == 0
        assert cleanup_evicted_ids(None, context) == 0
        assert change_calls == []

    def test_long_conversation_keeps_invariants(self, context):
        """Allocate, register and evict over many turns; the map stays bounded."""
        live = []
        for i in range(50):
            numeric_id = to_numeric_id(f"msg-{i}", context)
            turn = {"_refs": [numeric_id]}
            register_turn_refs(turn, context)
            live.append(turn)
            if len(live) > 4:
                cleanup_evicted_ids([live.pop(0)], context)
            assert_invariants(context)

        assert len(context.id_map) == 4
        assert context.next_numeric_id <= 7


class TestRebuild:
    """Rebuilding counts from the surviving window."""

    def test_rebuild_counts_and_sweeps_orphans(self, context):
        for external_id in ("a", "b", "c"):
            to_numeric_id(external_id, context)
        context.ref_counts = {1: 5, 3: 2}  # stale

        referenced, orphans = build_ref_counts(
            [{"_refs": [1, 2]}, Turn(role="user", refs=[2, 9])],
            context,
        )

        assert (referenced, orphans) == (2, 1)
        assert context.ref_counts == {1: 1, 2: 2}
        assert context.id_map == {1: "a", 2: "b"}
        assert context.free_ids == [3]
        assert_invariants(context)

    def test_rebuild_notifies_owner(self, context, change_calls):
        build_ref_counts([], context)
        assert len(change_calls) == 1
