from figmatron.models.protocol import ContextPacket, SelectionInfo, SelectionMetadata
from figmatron.prompts.builder import (
    CONTEXT_SVG_MARKER,
    MAX_PROMPT_SVG_CHARS,
    MAX_REPAIR_RESPONSE_CHARS,
    build_prompt_text,
    build_repair_prompt,
    system_prompt_for,
    truncate,
)
from figmatron.prompts.templates import (
    ASK_PROMPT,
    BASE_SVG_PROMPT,
    STRUCTURED_IR_PROMPT,
    VECTORIZE_PROMPT,
)

SELECTED_SVG = '<svg viewBox="0 0 10 10"><rect width="10" height="10"/></svg>'


def _context(svg=SELECTED_SVG, screenshot=None):
    return ContextPacket(
        svg=svg,
        metadata=SelectionMetadata(id="1:2", name="Card", type="FRAME", width=10, height=10, x=0, y=0),
        screenshot_png_base64=screenshot,
        selection_info=SelectionInfo(count=1, has_selection=True, primary_id="1:2", primary_name="Card"),
    )


def test_truncate_appends_marker_with_dropped_count():
    assert truncate("abc", 5) == "abc"
    assert truncate("abcdefgh", 5) == "abcde\n...[TRUNCATED 3 CHARS]"


def test_modify_prompt_embeds_context_svg():
    text = build_prompt_text(
        user_prompt="Make it blue",
        mode="modify",
        route="direct_svg",
        context=_context(),
        screenshot_included=False,
    )
    assert "MODE: MODIFY" in text
    assert "RESPONSE_FORMAT: SVG" in text
    assert "Make it blue" in text
    assert CONTEXT_SVG_MARKER in text
    assert SELECTED_SVG in text
    assert '"name": "Card"' in text
    assert "SCREENSHOT_ATTACHED" not in text


def test_vectorize_prompt_omits_context_svg():
    text = build_prompt_text(
        user_prompt="Trace it",
        mode="vectorize",
        route="direct_svg",
        context=_context(screenshot="QUJD"),
        screenshot_included=True,
    )
    assert CONTEXT_SVG_MARKER not in text
    assert SELECTED_SVG not in text
    assert "SCREENSHOT_ATTACHED: 3 bytes" in text


def test_structured_prompt_requests_json():
    text = build_prompt_text(
        user_prompt="Flowchart",
        mode="create",
        route="structured_ir",
        context=ContextPacket(),
        screenshot_included=False,
    )
    assert "RESPONSE_FORMAT: JSON_DIAGRAM_IR" in text
    assert "PRIMARY_NODE_METADATA" not in text


def test_oversized_context_svg_is_truncated():
    big = "<svg>" + "x" * (MAX_PROMPT_SVG_CHARS + 50) + "</svg>"
    text = build_prompt_text(
        user_prompt="Edit",
        mode="modify",
        route="direct_svg",
        context=_context(svg=big),
        screenshot_included=False,
    )
    assert "...[TRUNCATED 61 CHARS]" in text


def test_system_prompt_lookup():
    assert system_prompt_for("ask", "direct_svg") == ASK_PROMPT.strip()
    assert system_prompt_for("vectorize", "direct_svg") == VECTORIZE_PROMPT.strip()
    assert system_prompt_for("create", "structured_ir") == STRUCTURED_IR_PROMPT.strip()
    assert system_prompt_for("modify", "direct_svg") == BASE_SVG_PROMPT.strip()


def test_repair_prompt_numbers_errors_and_truncates_response():
    broken = "y" * (MAX_REPAIR_RESPONSE_CHARS + 10)
    text = build_repair_prompt(
        original_prompt="Draw a cat",
        original_response=broken,
        validation_errors=["Missing viewBox.", "Disallowed tags found: script"],
    )
    assert "Draw a cat" in text
    assert "1. Missing viewBox." in text
    assert "2. Disallowed tags found: script" in text
    assert "...[TRUNCATED 10 CHARS]" in text
