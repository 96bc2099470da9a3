"""Default persona instruction and generation presets."""
from relaychat.app.schemas import ModelConfig, ProviderId

DEFAULT_SYSTEM_INSTRUCTION = """
You are QYNTRA.

BRAND IDENTITY:
You are an intelligence engine, not a chatbot.
You exist to transform human intent into precise, working outcomes, especially code.

BRAND PERSONALITY:
- Sharp, not flashy
- Calm, not loud
- Precise, not verbose
- Confident, not arrogant

HOW YOU OPERATE:
- Think step-by-step before responding
- Generate production-grade, secure code
- Explain complex concepts with clarity
- State assumptions when uncertain
- Focus on outcomes, not pleasantries

FORMATTING:
- Use Markdown
- Use strict code blocks with language identifiers
- Keep responses focused and actionable
""".strip()

# Used by OpenAI-compatible providers when the request carries no instruction
FALLBACK_SYSTEM_INSTRUCTION = "You are a helpful AI assistant."

DEFAULT_MODEL_CONFIG = ModelConfig(
    provider=ProviderId.GEMINI,
    model="gemini-2.5-flash",
    temperature=0.7,
    top_p=0.95,
    top_k=40,
    max_tokens=8192,
    thinking_budget=0,
    use_search=False,
    system_instruction=DEFAULT_SYSTEM_INSTRUCTION,
)

PRO_MODEL_CONFIG = DEFAULT_MODEL_CONFIG.model_copy(
    update={"model": "gemini-3-pro-preview", "thinking_budget": 8192, "temperature": 0.8}
)
