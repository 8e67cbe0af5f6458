"""
idbridge Core - Id allocation, reference counting, repair and merge.

Every operation takes the TranslationContext it works on explicitly.
"""

from idbridge.core.codec import (
    canonicalize_text,
    decode_response,
    decode_text,
    encode_object,
    encode_text,
    encode_tool_result,
)
from idbridge.core.collector import collect_turn_refs
from idbridge.core.context import TranslationContext, create_isolated_context
from idbridge.core.merge import merge_id_map_from_headless, restore_id_map
from idbridge.core.refcount import (
    build_ref_counts,
    cleanup_evicted_ids,
    register_turn_refs,
    unregister_turn_refs,
)
from idbridge.core.repair import repair_malformed_refs
from idbridge.core.tool_args import decode_tool_args
from idbridge.core.translator import (
    get_translation_stats,
    remap_external_id,
    reset_context,
    to_numeric_id,
    to_real_id,
)

__all__ = [
    "TranslationContext",
    "create_isolated_context",
    "to_numeric_id",
    "to_real_id",
    "remap_external_id",
    "reset_context",
    "get_translation_stats",
    "register_turn_refs",
    "unregister_turn_refs",
    "cleanup_evicted_ids",
    "build_ref_counts",
    "collect_turn_refs",
    "repair_malformed_refs",
    "decode_text",
    "canonicalize_text",
    "decode_response",
    "encode_text",
    "encode_object",
    "encode_tool_result",
    "decode_tool_args",
    "merge_id_map_from_headless",
    "restore_id_map",
]
