"""System instructions per cell type."""

BASE_PROMPT = """You are an AI assistant helping with a business workflow.
You have access to previous cell outputs which may be referenced in the user's request.
Be concise and actionable in your responses."""

CELL_TYPE_INSTRUCTIONS = {
    "command": """Execute the user's command and provide clear results.
If the command requires external data you don't have, explain what would be needed.""",
    "query": """Retrieve and structure the requested data.
Format data as JSON when possible (wrap in ```json blocks).
Include relevant metadata about the query results.""",
    "transform": """Transform the input data as requested.
Preserve data structure unless explicitly asked to change it.
Output the transformed data as JSON (wrap in ```json blocks).""",
    "visualize": """Create a visualization description or structured data for charts.
For charts, output JSON with: { chartType, labels, datasets, options }
For tables, output JSON with: { columns, rows }
For documents, provide structured markdown.""",
    "note": """This is a note cell. Simply acknowledge the note content.""",
    "condition": """Evaluate the condition and respond with exactly "true" or "false".
Explain your reasoning briefly after the boolean result.""",
}


def system_prompt_for(cell_type: str) -> str:
    """Build the system instruction for a cell type.

    Types without a dedicated instruction (approve) get the base prompt.

    Args:
        cell_type: Cell type name

    Returns:
        str: System instruction
    """
    instruction = CELL_TYPE_INSTRUCTIONS.get(cell_type)
    if instruction is None:
        return BASE_PROMPT
    return f"{BASE_PROMPT}\n{instruction}"
