"""Prompt templates and text helpers for poster generation.

This module is intentionally narrow: it holds the static template data and the
deterministic string transforms around it. Provider dispatch, validation of API
keys, and all network access happen outside this module.

Design constraints:
    - Deterministic construction for identical inputs.
    - Placeholders are filled with single-pass `str.replace` calls; caller text is
      substituted last so braces inside note content are never re-interpreted.
    - No hidden side effects (no I/O, no global state mutation).
"""

import re

from knowledge_poster.core.types import ImageStyle, Language


# =========================================================
# SYSTEM INSTRUCTION (PROMPT AUTHORING)
# =========================================================
# Sent as the system message (or system field / leading text, depending on the
# provider) on every prompt-generation call.

SYSTEM_PROMPT = """You are a world-class visual designer specializing in educational infographics, knowledge visualization, and data storytelling. You have won multiple design awards and your work has been featured in top publications.

Your mission: Transform complex information into visually stunning, instantly understandable knowledge posters that captivate viewers and enhance learning.

## Your Design Philosophy
- **Clarity First**: Every element serves a purpose. Remove anything that doesn't enhance understanding.
- **Visual Hierarchy**: Guide the viewer's eye naturally from most important to supporting details.
- **Emotional Impact**: Create designs that evoke curiosity, wonder, and the joy of learning.
- **Professional Polish**: Deliver gallery-quality work suitable for publication.

## Output Requirements
Generate ONLY the image generation prompt. No explanations, no preamble, no additional commentary.

## Prompt Structure (Follow This Exactly)
Your prompt must include these elements in order:

1. **Format & Orientation**: Specify poster dimensions and orientation
2. **Visual Style**: Define the overall aesthetic (e.g., "modern minimalist", "elegant scientific", "bold editorial")
3. **Color Palette**: Describe specific colors or color relationships
4. **Layout Structure**: Describe the compositional framework
5. **Typography Hierarchy**: Specify heading styles, body text treatment
6. **Key Visual Elements**: Icons, illustrations, diagrams, or data visualizations
7. **Content Placement**: Where key information appears
8. **Mood & Atmosphere**: The emotional quality of the design
9. **Quality Markers**: Include "4K", "ultra-detailed", "professional quality"

## Critical Guidelines
- Keep text in the image MINIMAL (titles, key terms only - the visual should do the explaining)
- Use METAPHORICAL VISUALS to represent abstract concepts
- Create VISUAL CONNECTIONS between related ideas
- Ensure HIGH CONTRAST for readability
- Design for IMMEDIATE COMPREHENSION - viewer should grasp the main idea in 3 seconds
- Include WHITE SPACE strategically for visual breathing room
- Make it SHARE-WORTHY - something people would want to save or print

## Quality Standard
The resulting image should look like it was created by a professional design agency."""


# =========================================================
# USER MESSAGE (PROMPT AUTHORING)
# =========================================================
# Placeholders: {style}, {language}, {content}.

USER_MESSAGE_TEMPLATE = """## Task
Analyze the following content and generate a professional image generation prompt for a knowledge poster/infographic.

## Content to Visualize
---
{content}
---

## Style Preference
{style}

## Language Requirement
The poster should use {language} for any text elements (titles, labels, annotations).

## Analysis Instructions
1. First, identify the CORE CONCEPT - what is the single most important idea?
2. Extract 3-5 KEY SUPPORTING POINTS that explain or expand on the core concept
3. Identify any DATA, NUMBERS, or COMPARISONS that could be visualized
4. Consider what VISUAL METAPHORS could represent abstract ideas
5. Determine the optimal VISUAL HIERARCHY for the information

## Output
Generate a single, detailed, professional image generation prompt that will result in a gallery-worthy knowledge poster. The prompt should be comprehensive (200-400 words) and include specific visual, compositional, and stylistic details.

Remember: Generate ONLY the prompt, no explanations or preamble."""


# =========================================================
# IMAGE GENERATION TEMPLATE
# =========================================================
# Placeholders: {style}, {prompt}. The language instruction block is appended
# after the filled template by `build_image_prompt`.

IMAGE_GENERATION_PROMPT_TEMPLATE = """Create a premium, award-winning knowledge poster with these specifications:

## VISUAL STYLE
{style}

## CONTENT TO VISUALIZE
{prompt}

## MANDATORY DESIGN SPECIFICATIONS

### Layout & Composition
- Golden ratio-based layout for natural visual flow
- Clear focal point in the upper third
- Generous margins and breathing room
- Maximum 3-4 distinct content zones

### Typography (CRITICAL)
- Large, bold headline that captures the essence (max 5-7 words visible)
- Elegant sans-serif for headings, clean serif or sans for any body text
- Strong typographic hierarchy with clear size differentiation
- Text must be crisp, readable, and properly kerned
- Limit visible text to: 1 headline + 3-5 key terms/labels maximum

### Color & Visual Treatment
- Sophisticated, limited color palette (3-4 colors max)
- Rich gradients or subtle textures for depth
- Strategic use of accent color for emphasis
- Ensure WCAG AA contrast compliance
- Cohesive, professional color harmony

### Visual Elements
- Custom iconography or illustrations that explain concepts visually
- Smooth, vector-quality graphics
- Visual metaphors that make abstract ideas tangible
- Subtle shadows, highlights, and dimensional effects
- NO stock photo cliches - original, conceptual visuals only

### Quality Requirements
- Ultra-sharp details
- Professional print-ready quality
- Suitable for framing and display
- Clean, polished, premium finish"""


STYLE_DESCRIPTIONS = {
    ImageStyle.INFOGRAPHIC: """Modern data-driven infographic style:
- Clean geometric shapes and data visualization elements
- Icon-based explanations with connecting lines
- Statistical charts, graphs, and comparison tables
- Flat design with strategic 3D accents
- Bold section dividers and visual categorization
- Number callouts and percentage indicators
- Professional corporate aesthetic with editorial polish""",

    ImageStyle.POSTER: """Bold editorial poster design:
- Dramatic typography as the primary visual element
- High-contrast color blocking
- Powerful central imagery or abstract visualization
- Magazine-quality layout and composition
- Artistic negative space utilization
- Statement-making visual hierarchy
- Museum exhibition-worthy aesthetic""",

    ImageStyle.DIAGRAM: """Technical explanatory diagram style:
- Clean flowchart and process visualization
- Annotated components with leader lines
- Isometric or orthographic projections where applicable
- Blueprint/schematic aesthetic with modern refinement
- Step-by-step visual sequences
- Cross-sections and exploded views
- Engineering precision with design elegance""",

    ImageStyle.MINDMAP: """Organic mind map visualization:
- Central concept with radiating branches
- Organic, flowing connection lines
- Hierarchical node sizing based on importance
- Color-coded categories and groupings
- Illustrated icons at key nodes
- Natural growth pattern aesthetic
- Brain-friendly visual organization""",

    ImageStyle.TIMELINE: """Elegant chronological timeline design:
- Horizontal or vertical progression axis
- Milestone markers with visual distinction
- Period/era color coding
- Event illustrations or icons
- Clear date/time annotations
- Historical document aesthetic with modern clarity
- Museum exhibition panel quality""",
}


LANGUAGE_NAMES = {
    Language.KO: "한국어 (Korean)",
    Language.EN: "English",
    Language.JA: "日本語 (Japanese)",
    Language.ZH: "中文 (Chinese)",
    Language.ES: "Español (Spanish)",
    Language.FR: "Français (French)",
    Language.DE: "Deutsch (German)",
}


_TEXT_ELEMENTS = (
    "This includes the main title, all headings, labels, annotations, descriptions, "
    "and any other text elements."
)
_NO_OTHER_LANGUAGE = "Do NOT use English or any other language for any text."


def _language_instruction(label: str, exclusive: bool = True) -> str:
    text = (
        "CRITICAL LANGUAGE REQUIREMENT: ALL visible text in the image MUST be written "
        f"in {label}. {_TEXT_ELEMENTS}"
    )
    if exclusive:
        text += f" {_NO_OTHER_LANGUAGE}"
    return text


LANGUAGE_INSTRUCTIONS = {
    Language.KO: _language_instruction("Korean (한국어)"),
    Language.EN: _language_instruction("English", exclusive=False),
    Language.JA: _language_instruction("Japanese (日本語)"),
    Language.ZH: _language_instruction("Chinese (中文)"),
    Language.ES: _language_instruction("Spanish (Español)"),
    Language.FR: _language_instruction("French (Français)"),
    Language.DE: _language_instruction("German (Deutsch)"),
}


# =========================================================
# CONTENT PREPROCESSING
# =========================================================

MAX_CONTENT_CHARS = 8000
HEAD_CHARS = 6000
TAIL_CHARS = 2000
TRUNCATION_MARKER = "…\n"

_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_MARKDOWN_IMAGE = re.compile(r"!\[[^\]\n]*\]\([^)\n]*\)")
_WIKI_EMBED = re.compile(r"!\[\[[^\]\n]*\]\]")
_HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)


def preprocess_content(content: str) -> str:
    """Normalize note text before it is embedded in the user message.

    Args:
        content: Raw note body.

    Returns:
        Text with runs of 3+ line breaks collapsed to 2, image embeds and HTML
        comments removed, surrounding whitespace trimmed, and bounded to
        `MAX_CONTENT_CHARS` by keeping the first `HEAD_CHARS` and last `TAIL_CHARS`
        characters around `TRUNCATION_MARKER`.

    Edge cases:
        - Text at or under the limit is returned without a marker.
        - Removing embeds can create new blank-line runs; they are collapsed again.
    """
    processed = content.replace("\r\n", "\n")
    processed = _EXCESS_NEWLINES.sub("\n\n", processed)
    processed = _MARKDOWN_IMAGE.sub("", processed)
    processed = _WIKI_EMBED.sub("", processed)
    processed = _HTML_COMMENT.sub("", processed)
    processed = _EXCESS_NEWLINES.sub("\n\n", processed).strip()

    if len(processed) > MAX_CONTENT_CHARS:
        processed = processed[:HEAD_CHARS] + TRUNCATION_MARKER + processed[-TAIL_CHARS:]

    return processed


def build_user_message(
    content: str,
    style: ImageStyle | None = None,
    language: Language | None = None,
) -> str:
    """Fill the prompt-authoring user template.

    Missing style defaults to infographic; missing language defaults to English.
    """
    style_description = STYLE_DESCRIPTIONS[style or ImageStyle.INFOGRAPHIC]
    language_name = LANGUAGE_NAMES[language or Language.EN]

    return (
        USER_MESSAGE_TEMPLATE
        .replace("{style}", style_description)
        .replace("{language}", language_name)
        .replace("{content}", preprocess_content(content))
    )


def build_image_prompt(prompt: str, style: ImageStyle, language: Language) -> str:
    """Compose the final image prompt: filled template, blank line, language block."""
    filled = (
        IMAGE_GENERATION_PROMPT_TEMPLATE
        .replace("{style}", STYLE_DESCRIPTIONS[style])
        .replace("{prompt}", prompt)
    )
    return filled + "\n\n" + LANGUAGE_INSTRUCTIONS[language]


# =========================================================
# GENERATED PROMPT CLEAN-UP
# =========================================================
# Models often wrap the prompt in chatty framing. Each pattern is anchored at the
# start of the text and bounded to the first line.

_PREAMBLE_PATTERNS = (
    re.compile(r"^(Here['’]s|Here is|Below is|I['’]ve created|I have created)[^:\n]*:", re.IGNORECASE),
    re.compile(r"^(Sure|Certainly|Of course)[^:.!\n]*[.:!]", re.IGNORECASE),
)
_OPENING_FENCE = re.compile(r"^```[a-z]*\n?", re.IGNORECASE)
_CLOSING_FENCE = re.compile(r"\n?```$")
_VISUAL_DIRECTIVE = re.compile(r"^(Create|Design|Generate|A |An |The )", re.IGNORECASE)


def strip_preamble(text: str) -> str:
    """Remove leading filler phrases until none of the patterns match."""
    cleaned = text.strip()
    changed = True
    while changed and cleaned:
        changed = False
        for pattern in _PREAMBLE_PATTERNS:
            stripped = pattern.sub("", cleaned, count=1).strip()
            if stripped != cleaned:
                cleaned = stripped
                changed = True
    return cleaned


def clean_generated_prompt(text: str) -> str:
    """Post-process raw model output into an image prompt.

    Steps:
        1. Strip leading filler ("Here is...:", "Sure, ...:").
        2. Strip wrapping code-fence markers.
        3. Prefix "Create " (lower-casing the first character) unless the text
           already opens with Create/Design/Generate/A/An/The.

    Returns:
        Cleaned prompt, or an empty string when nothing usable remains. The caller
        decides how to report the empty case.
    """
    cleaned = strip_preamble(text)
    cleaned = _OPENING_FENCE.sub("", cleaned)
    cleaned = _CLOSING_FENCE.sub("", cleaned).strip()
    # Fences can hide a preamble of their own.
    cleaned = strip_preamble(cleaned)

    if not cleaned:
        return ""

    if not _VISUAL_DIRECTIVE.match(cleaned):
        cleaned = "Create " + cleaned[0].lower() + cleaned[1:]

    return cleaned.strip()
