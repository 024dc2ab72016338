# kitebot/services/llm.py
"""
Gemini client for portfolio analysis.

Gemini is called through its OpenAI-compatible endpoint, so the regular
openai SDK does the HTTP work.
"""
from typing import Any, Dict
import json
import logging

import openai
from openai import AsyncOpenAI

from kitebot.settings import settings

logger = logging.getLogger(__name__)

RATE_LIMIT_HINTS = ("quota", "rate limit", "rate_limit", "resource_exhausted")

DEFAULT_DISCLAIMER = "This is an educational analysis, not investment advice."

SYSTEM_PROMPT = """You are a SEBI-compliant financial portfolio analysis assistant.
You do NOT give buy or sell recommendations.
You provide educational, risk-based, and diversification insights only.
You must avoid stock-specific price targets.
Your goal is to analyze portfolio structure, risk, diversification, and allocation.
Always respond in valid JSON format matching the specified schema."""

RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "diversification_score": {"type": "number", "description": "Score from 1-10"},
        "risk_profile": {"type": "string", "enum": ["Conservative", "Moderate", "Aggressive"]},
        "key_insights": {"type": "array", "items": {"type": "string"}},
        "allocation_analysis": {
            "type": "object",
            "properties": {
                "equity": {"type": "string"},
                "mutual_funds": {"type": "string"},
                "cash": {"type": "string"},
            },
        },
        "risk_analysis": {
            "type": "object",
            "properties": {
                "volatility_risk": {"type": "string"},
                "sector_risk": {"type": "string"},
                "concentration_risk": {"type": "string"},
            },
        },
        "improvement_suggestions": {"type": "array", "items": {"type": "string"}},
        "disclaimer": {"type": "string"},
    },
    "required": ["diversification_score", "risk_profile", "key_insights", "improvement_suggestions", "disclaimer"],
}

QA_SYSTEM_PROMPT = """You are a SEBI-compliant financial portfolio analysis assistant.
You do NOT give buy or sell recommendations.
You provide educational, risk-based, and diversification insights only.
You must avoid stock-specific price targets.

FORMATTING RULES (CRITICAL):
- Use PLAIN TEXT only, no markdown syntax
- Use emojis for visual structure (📊 📈 📉 ⚠️ ✅ 🔴 🟢 💰)
- Use simple bullet points with "•" character
- Use line breaks for sections
- Keep responses concise (under 300 words)
- Do NOT use asterisks (*), underscores (_), or backticks (`)
- For emphasis, use CAPS or emojis instead of bold/italic

Always end with a brief disclaimer line."""


class AIError(Exception):
    """Gemini call failed; str(e) is shown to the user."""


class AIDisabledError(AIError):
    pass


class AIAuthError(AIError):
    pass


class AIRateLimitError(AIError):
    pass


class AIResponseError(AIError):
    pass


def _translate(e: Exception, action: str) -> AIError:
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AIAuthError("Invalid Gemini API key. Please check your configuration.")
    msg = str(e)
    if isinstance(e, openai.RateLimitError) or any(k in msg.lower() for k in RATE_LIMIT_HINTS):
        return AIRateLimitError("Gemini API rate limit reached. Please try again later.")
    return AIError(f"{action} failed: {msg}")


def _first_message(resp, action: str) -> str:
    if not resp.choices:
        raise AIResponseError(f"{action} failed: the model returned no choices.")
    return resp.choices[0].message.content or ""


class GeminiClient:
    def __init__(self, api_key: str | None, model: str, base_url: str):
        self.model = model
        self.enabled = bool(api_key)
        self.client: AsyncOpenAI | None = None
        if not self.enabled:
            logger.warning("Gemini API key not configured. AI analysis disabled.")
            return
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    def _require_enabled(self) -> AsyncOpenAI:
        if not self.enabled or self.client is None:
            raise AIDisabledError(
                "Gemini API is not configured. Please add GEMINI_API_KEY to your environment."
            )
        return self.client

    async def analyze_portfolio(self, portfolio_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Structured analysis of an aggregated portfolio.

        Returns:
            Dict following RESPONSE_SCHEMA (disclaimer always present)
        """
        client = self._require_enabled()
        prompt = f"""Analyze this portfolio and provide insights:

{json.dumps(portfolio_data, indent=2, default=str)}

Respond with a JSON object matching this schema:
{json.dumps(RESPONSE_SCHEMA)}

Provide a comprehensive analysis covering:
1. Diversification quality (score 1-10)
2. Risk profile assessment
3. Key insights about the portfolio structure
4. Allocation analysis (equity vs mutual funds)
5. Risk analysis (volatility, sector concentration, leverage)
6. Specific improvement suggestions

Important: Be educational and risk-focused. Do not provide buy/sell recommendations."""

        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error("Gemini API error: %s", e)
            raise _translate(e, "AI analysis") from e

        text = _first_message(resp, "AI analysis")
        try:
            analysis = json.loads(text)
        except json.JSONDecodeError as e:
            raise AIResponseError("AI analysis failed: the model returned malformed JSON.") from e
        if not isinstance(analysis, dict):
            raise AIResponseError("AI analysis failed: unexpected response shape.")

        if not analysis.get("disclaimer"):
            analysis["disclaimer"] = DEFAULT_DISCLAIMER
        return analysis

    async def ask_question(self, portfolio_data: Dict[str, Any], question: str) -> str:
        """Free-form question about the portfolio; plain-text answer."""
        client = self._require_enabled()
        prompt = f"""Here is the user's portfolio data:

{json.dumps(portfolio_data, indent=2, default=str)}

User Question: {question}

Answer the question based on the portfolio data above. Be specific and reference actual holdings/values from the data when relevant. Keep your response concise (under 500 words). Do not provide buy/sell recommendations or price targets."""

        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": QA_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            )
        except openai.OpenAIError as e:
            logger.error("Gemini Q&A error: %s", e)
            raise _translate(e, "AI query") from e

        text = _first_message(resp, "AI query").strip()
        if not text:
            raise AIResponseError("AI query failed: the model returned an empty answer.")

        lowered = text.lower()
        if "disclaimer" not in lowered and "not investment advice" not in lowered:
            text += "\n\n⚠️ Disclaimer: This is educational analysis, not investment advice."
        return text


_client: GeminiClient | None = None


def get_gemini_client() -> GeminiClient:
    global _client
    if _client is None:
        _client = GeminiClient(settings.gemini_api_key, settings.gemini_model, settings.gemini_base_url)
    return _client
