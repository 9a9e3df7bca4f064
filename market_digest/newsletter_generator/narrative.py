import logging
from typing import Optional

import openai

from .snapshot import MarketSnapshot

logger = logging.getLogger(__name__)


class NarrativeWriter:
    """
    Writes the market overview paragraph using direct OpenAI API calls.
    Returns None whenever a narrative cannot be produced so callers fall back
    to the deterministic summary.
    """

    def __init__(self, api_key: Optional[str], model: str = "gpt-4-turbo", client=None):
        """Initialize the narrative writer and OpenAI client."""
        self.model = model
        self.client = client
        if self.client is None:
            if not api_key:
                logger.warning("OpenAI API key is missing. Narratives will not be generated.")
            else:
                try:
                    self.client = openai.OpenAI(api_key=api_key)
                    logger.info("OpenAI client initialized successfully.")
                except openai.OpenAIError as e:
                    logger.error(f"Failed to initialize OpenAI client: {e}", exc_info=True)

    @staticmethod
    def build_prompt(snapshot: MarketSnapshot) -> str:
        return (
            "Generate a concise financial market analysis based on this data:\n\n"
            f"Market sentiment: {snapshot.sentiment:.2f} (range -1 to 1)\n"
            f"Market value: {snapshot.index_value:.2f}\n"
            f"Percent change: {snapshot.percent_change:.2f}%\n"
            f"Volatility index: {snapshot.volatility:.2f}\n"
            f"RSI: {snapshot.indicators.rsi:.2f}\n"
            f"MACD: {snapshot.indicators.macd:.4f}\n\n"
            "Keep your analysis professional, fact-based, and under 150 words. Focus on what these "
            "numbers suggest about market conditions. Do not mention that you're an AI or reference this prompt."
        )

    def write(self, snapshot: MarketSnapshot) -> Optional[str]:
        """Call OpenAI ChatCompletion for the overview, or return None on failure."""
        if not self.client:
            return None
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a professional financial analyst writing a daily market newsletter."},
                    {"role": "user", "content": self.build_prompt(snapshot)},
                ],
                temperature=0.4,
                max_tokens=400,
            )
            content = response.choices[0].message.content
            return content.strip() if content and content.strip() else None
        except openai.AuthenticationError:
            logger.error("OpenAI Authentication Error: Check your API key.")
        except openai.RateLimitError:
            logger.error("OpenAI Rate Limit Error: You have exceeded your quota.")
        except openai.APIConnectionError as e:
            logger.error(f"OpenAI API Connection Error: {e}")
        except openai.OpenAIError as e:
            logger.error(f"Error calling OpenAI API: {e}", exc_info=True)
        return None
