"""Fixed instruction tables and the job-input builder.

The remote input is the query wrapped with lookup strings keyed by the job
options, followed by every text document inlined between a named delimiter
pair. Non-text documents (base64 bodies) are counted but never inlined.
"""

from __future__ import annotations

from gemini_research.models.schemas import (
    DocumentInput,
    OutputFormat,
    ResearchDepth,
    ResearchOptions,
    SourceScope,
)

DEPTH_INSTRUCTIONS: dict[ResearchDepth, str] = {
    ResearchDepth.QUICK: "Provide a brief, concise answer focusing on the key points.",
    ResearchDepth.STANDARD: "Provide a balanced response with main findings and supporting details.",
    ResearchDepth.DEEP: (
        "Conduct thorough research, exploring multiple perspectives and providing detailed analysis."
    ),
    ResearchDepth.MAXIMUM: (
        "Perform exhaustive research, covering all aspects comprehensively with detailed "
        "citations and analysis from multiple authoritative sources."
    ),
}

FORMAT_INSTRUCTIONS: dict[OutputFormat, str] = {
    OutputFormat.SUMMARY: "Keep the output to a short summary of the most important findings.",
    OutputFormat.DETAILED: "Present the findings in detail, section by section, with supporting evidence.",
    OutputFormat.MARKDOWN: (
        "Format the output as a detailed report with Markdown headings, bullet points, "
        "and proper structure."
    ),
    OutputFormat.JSON: (
        "Provide the response in valid JSON format with sections: summary, findings, "
        "sources, and conclusions."
    ),
}

# SourceScope.ALL adds nothing
SOURCE_INSTRUCTIONS: dict[SourceScope, str] = {
    SourceScope.WEB: "Prioritise general web sources.",
    SourceScope.ACADEMIC: "Prioritise academic and peer-reviewed sources.",
    SourceScope.NEWS: "Prioritise recent news reporting.",
}

CITATION_INSTRUCTION = "Include citations for all factual claims and reference sources clearly."

REFINE_PROMPT = """Review the following research report to ensure logical consistency, depth, and clarity.
Identify any logical gaps, synthesize contradictory evidence, and structure the final argument persuasively.
Maintain all citations and the original report structure where possible, but enhance the prose and reasoning.

RESEARCH REPORT:
{content}"""

_TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "application/yaml",
    "application/toml",
}


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES


def build_research_input(
    query: str,
    options: ResearchOptions,
    documents: list[DocumentInput] | None = None,
) -> str:
    """Compose the remote job input for *query* under *options*."""
    parts = [f"{DEPTH_INSTRUCTIONS[options.depth]}\n\nResearch Query: {query}"]

    parts.append(FORMAT_INSTRUCTIONS[options.output_format])

    scope = SOURCE_INSTRUCTIONS.get(options.source_scope)
    if scope:
        parts.append(scope)

    if options.include_citations:
        parts.append(CITATION_INSTRUCTION)

    if documents:
        parts.append(
            f"Analyze the following {len(documents)} document(s) and incorporate relevant information:"
        )
        for doc in documents:
            if is_text_mime_type(doc.mime_type):
                parts.append(f"--- Document: {doc.name} ---\n{doc.content}\n--- End Document ---")

    return "\n\n".join(parts)


def build_refine_prompt(content: str) -> str:
    return REFINE_PROMPT.format(content=content)
