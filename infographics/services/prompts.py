"""Prompt text for page generation and HTML repair.

The generation prompt is the upstream half of the "self-contained page"
contract: validation downstream assumes only the whitelisted CDN libraries
below are referenced. The repair prompt forbids adding any external resource.
"""

from typing import List

# CDN libraries a generated page may load. Anything else must be inline.
ALLOWED_CDN_LIBRARIES = (
    ("Tailwind CSS", '<script src="https://cdn.tailwindcss.com"></script>'),
    ("Lucide icons", '<script src="https://cdn.jsdelivr.net/npm/lucide@latest"></script>'),
    ("MathJax", '<script id="MathJax-script" async src="https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"></script>'),
    ("Framer Motion", '<script src="https://cdn.jsdelivr.net/npm/framer-motion@latest/dist/framer-motion.js"></script>'),
    ("Chart.js", '<script src="https://cdn.jsdelivr.net/npm/chart.js@latest/dist/chart.umd.min.js"></script>'),
    ("vis-timeline", '<script src="https://cdn.jsdelivr.net/npm/vis-timeline@latest/dist/vis-timeline-graph2d.min.js"></script> '
                     'with https://cdn.jsdelivr.net/npm/vis-timeline@latest/styles/vis-timeline-graph2d.min.css'),
)

INITIAL_GENERATION_COMMENT = "Initial generation"


def generation_system_prompt(footer_attribution: str) -> str:
    """System prompt for the page generation model."""
    libraries = "\n".join(f"  - {name}: {tag}" for name, tag in ALLOWED_CDN_LIBRARIES)
    return (
        "You are an expert infographic & data-visualization designer.\n\n"
        "Output MUST be valid JSON following the provided schema, where `generatedHtml` "
        "contains a full, production-ready HTML5 document.\n\n"
        "Design guidelines:\n"
        "- Visual polish: clean, spacious, modern typography.\n"
        "- Use only these libraries, loaded from their CDN exactly as shown:\n"
        f"{libraries}\n"
        "- Initialize Lucide with `lucide.createIcons()` when icons are used.\n"
        "- Use MathJax only when the content has equations, Framer Motion only for meaningful "
        "entrance and hover animations, Chart.js and vis-timeline for data and timelines.\n"
        "- Employ semantic HTML5 sections (header, main, section, article, figure, footer) "
        "and ARIA labels for accessibility.\n"
        "- Ensure a mobile-first, responsive layout using Flexbox or CSS Grid with sensible breakpoints.\n"
        "- Keep JavaScript at the end of <body>; separate content, presentation, and behavior.\n"
        "- Never add a link to any other external resource (images, fonts, stylesheets, scripts): "
        "the page must be self-contained. Draw illustrations with inline SVG or CSS.\n"
        "- Do NOT include any explanatory text outside the JSON object.\n"
        "- Never break the JSON schema or return partial/empty content.\n"
        "- Make sure the page renders correctly when opened directly in a browser.\n"
        f'- The page must always end with a footer mentioning "{footer_attribution}".'
    )


def _block(text: str) -> str:
    return "{{{\n" + (text or "") + "\n}}}"


def generation_user_prompt(
    project_name: str,
    project_description: str,
    style_description: str,
    page_title: str,
    content_markdown: str,
    generation_hints: List[str],
    previous_comment: str = "",
    user_comment: str = "",
    is_regeneration: bool = False,
) -> str:
    """User prompt carrying the page content and, for feedback regenerations, the feedback."""
    parts = [
        "You are an expert infographic designer. Create a beautiful, modern HTML page "
        "for an infographic slide.",
        "",
        "Project Context:",
        f"- Project Name: {{{{{{{project_name}}}}}}}",
        f"- Project Description: {_block(project_description)}",
        f"- Style Guidelines: {_block(style_description)}",
        f"- Page Title: {{{{{{{page_title}}}}}}}",
        "",
        "Content to Transform:",
        _block(content_markdown),
    ]

    if generation_hints:
        parts += [
            "",
            "Layout hints chosen by the author (follow them when laying out the slide):",
            ", ".join(generation_hints),
        ]

    if is_regeneration:
        parts += [
            "",
            "REGENERATION REQUEST:",
            "This is a regeneration of an existing page. The user has provided feedback for improvements.",
            "",
            "Previous Version Context:",
            f"- Previous Comment: {{{{{{{previous_comment or INITIAL_GENERATION_COMMENT}}}}}}}",
            f"- User Feedback: {{{{{{{user_comment}}}}}}}",
            "",
            "Take the user's feedback into account and modify the existing design based on "
            "their specific requests.",
        ]

    requirements = [
        "Create a complete HTML page with embedded CSS",
        "Use modern, clean design principles",
        "Make it visually appealing with proper typography, colors, and spacing",
        "Include the content in a structured, easy-to-read format",
        "Use CSS Grid or Flexbox for layout",
        "Make it responsive",
        "Follow the style guidelines provided",
        "Use appropriate icons, charts, or visual elements where relevant",
        "Ensure high contrast and readability",
        "The page should be self-contained (no external dependencies beyond the allowed CDN libraries)",
    ]
    if user_comment:
        requirements.append(f"IMPORTANT: Address the user's specific feedback: {user_comment}")

    parts += ["", "Requirements:"]
    parts += [f"{i}. {req}" for i, req in enumerate(requirements, 1)]
    return "\n".join(parts)


REPAIR_SYSTEM_PROMPT = "\n".join([
    "You are a senior HTML correctness agent.",
    "Your job is to fix only the concrete validator errors provided.",
    "The errors can be HTML syntax errors from a W3C validator, JavaScript runtime errors, "
    "or resource loading errors (e.g., 404s).",
    "ONLY FIX THE LISTED ERRORS AND DO NOT CHANGE ANYTHING ELSE.",
    "If you see a JavaScript error, analyze the script and fix the bug.",
    "If you see a loading error, remove or replace the failing reference with an inline "
    "equivalent (inline SVG, CSS, or data already in the page).",
    "Preserve content, structure, order, classes, ids, inline scripts and styles.",
    "Do not add or remove elements unless strictly necessary to resolve an error.",
    "Do not introduce external resources.",
    "Do not reformat whitespace except where required by the fix.",
    "Return valid JSON that matches the schema with the single field fixedHtml.",
])


def repair_user_prompt(html: str, error_blob: str) -> str:
    """User prompt for one repair round."""
    return "\n".join([
        "Here is the current HTML to fix:",
        "---HTML START---",
        html,
        "---HTML END---",
        "",
        "Here are the validator errors you must address exactly and only:",
        error_blob,
    ])
