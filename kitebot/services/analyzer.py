# kitebot/services/analyzer.py
"""
AI analysis pipeline: fetch + aggregate the portfolio, then ask Gemini.
Credits are handled by the caller (only after a successful answer).
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from kitebot.services.llm import AIDisabledError, GeminiClient
from kitebot.services.portfolio import fetch_portfolio

STANDARD_MODES = {"brief", "detailed", "full", "help", "credits"}

FOCUS_AREAS = ["diversification", "risk", "allocation", "concentration", "improvements"]


@dataclass
class AnalysisResult:
    is_empty: bool
    message: Optional[str] = None
    portfolio_summary: Dict[str, Any] = field(default_factory=dict)
    analysis: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnswerResult:
    is_empty: bool
    message: Optional[str] = None
    portfolio_summary: Dict[str, Any] = field(default_factory=dict)
    answer: str = ""


def is_custom_question(text: Optional[str]) -> bool:
    """Anything that is not one of the /analyze keywords is a question."""
    if not text:
        return False
    return text.strip().lower() not in STANDARD_MODES


def build_prompt_data(aggregated: Dict[str, Any], depth: str = "brief") -> Dict[str, Any]:
    return {
        **aggregated,
        "analysis_request": {"depth": depth, "focus_areas": list(FOCUS_AREAS)},
    }


def _ensure_enabled(gemini: GeminiClient) -> None:
    if not gemini.enabled:
        raise AIDisabledError("AI analysis is not available. Gemini API key not configured.")


async def analyze_portfolio(kite, gemini: GeminiClient, depth: str = "brief") -> AnalysisResult:
    _ensure_enabled(gemini)

    aggregated = await fetch_portfolio(kite)
    summary = aggregated["portfolio_summary"]
    if summary["holdings_count"] == 0:
        return AnalysisResult(
            is_empty=True,
            message="No holdings found. Add some investments to get AI-powered analysis.",
        )

    analysis = await gemini.analyze_portfolio(build_prompt_data(aggregated, depth))
    return AnalysisResult(is_empty=False, portfolio_summary=summary, analysis=analysis)


async def ask_portfolio_question(kite, gemini: GeminiClient, question: str) -> AnswerResult:
    _ensure_enabled(gemini)

    aggregated = await fetch_portfolio(kite)
    summary = aggregated["portfolio_summary"]
    if summary["holdings_count"] == 0:
        return AnswerResult(is_empty=True, message="No holdings found. Add some investments first.")

    answer = await gemini.ask_question(aggregated, question)
    return AnswerResult(is_empty=False, portfolio_summary=summary, answer=answer)
