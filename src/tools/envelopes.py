"""
JSON envelopes returned by every tool.

Success and failure envelopes share `count`, `source` and the result
array key; a failure adds `error: true` and `message`.
"""

from typing import Any, Dict, List, Optional

AI_HINT = (
    "CRITICAL INSTRUCTIONS: (1) The 'unit' field indicates measurement units - CPM means "
    "'counts per minute' NOT 'counts per second'. Always interpret and report CPM values as "
    "counts per minute. (2) Present all data in a purely scientific, factual manner without "
    "personal pronouns (I, we), exclamations, or conversational phrases. State only objective "
    "facts and measurements."
)

AI_GENERATED_NOTE = (
    "This data was retrieved by an AI assistant using Safecast tools. The interpretation and "
    "presentation of this data may be influenced by the AI system."
)


def success(source: str, result_key: str, results: List[Dict[str, Any]],
            total_available: Optional[int] = None, hint: bool = True, **extra: Any) -> Dict[str, Any]:
    envelope: Dict[str, Any] = {"count": len(results), "source": source}
    if total_available is not None:
        envelope["total_available"] = total_available
    envelope.update(extra)
    envelope[result_key] = results
    if hint:
        envelope["_ai_hint"] = AI_HINT
    envelope["_ai_generated_note"] = AI_GENERATED_NOTE
    return envelope


def failure(message: str, result_key: str = "results", source: Optional[str] = None) -> Dict[str, Any]:
    return {
        "error": True,
        "message": message,
        "count": 0,
        "source": source,
        result_key: [],
    }
