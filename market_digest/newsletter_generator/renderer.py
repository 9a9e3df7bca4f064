"""
Renders welcome and digest emails.

Rendering is a pure function of its inputs: the same snapshot, narrative and
date always produce the same message.
"""

import html
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import markdown

from ..email_service.models import EmailMessage, Subscriber
from .snapshot import MarketSnapshot

DISCLAIMER = (
    "This newsletter is for informational purposes only and does not constitute investment advice. "
    "Past performance is not indicative of future results. Investing involves risk, including "
    "possible loss of principal."
)

STYLE = """
                body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; background-color: #f5f7fa; max-width: 600px; margin: 20px auto; padding: 15px; }
                h1, h2, h3 { color: #2e7feb; margin-top: 1.5em; margin-bottom: 0.5em; }
                h1 { border-bottom: 2px solid #2e7feb; padding-bottom: 0.3em; font-size: 1.8em; }
                h2 { border-bottom: 1px solid #eee; padding-bottom: 0.2em; font-size: 1.3em; }
                p { margin-bottom: 1em; }
                a { color: #2e7feb; text-decoration: none; }
                table { width: 100%; border-collapse: collapse; margin: 15px 0; }
                th, td { padding: 8px; text-align: left; border-bottom: 1px solid #ddd; }
                th { background-color: #f5f5f5; }
                ul { padding-left: 20px; }
                li { margin-bottom: 0.5em; }
                .footer { margin-top: 2em; padding-top: 1em; border-top: 1px solid #eee; font-size: 0.85em; color: #777; }
"""


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    html: str
    text: str

    def to(self, recipient: str) -> EmailMessage:
        return EmailMessage(to=recipient, subject=self.subject, html=self.html, text=self.text)


def _esc(value: str) -> str:
    return html.escape(value or '', quote=True)


def _signed(value: float, digits: int = 2) -> str:
    return f"{'+' if value >= 0 else ''}{value:.{digits}f}"


def fallback_narrative(snapshot: MarketSnapshot) -> str:
    """Deterministic market summary used when no generated narrative is available."""
    mood = 'positive' if snapshot.sentiment > 0 else 'negative'
    move = 'gain' if snapshot.percent_change > 0 else 'decline'
    return (
        f"Market sentiment is currently {mood} at {snapshot.sentiment:.2f}, with the market showing a "
        f"{move} of {abs(snapshot.percent_change):.2f}%. Technical indicators suggest a "
        f"{snapshot.indicators.rsi_label.lower()} environment."
    )


class DigestRenderer:
    """Builds email bodies for the welcome and daily digest templates."""

    def __init__(self, title: str = 'Market Insights', dashboard_url: str = 'https://equora.ai/dashboard'):
        self.title = title
        self.dashboard_url = dashboard_url

    def _wrap(self, page_title: str, body_markdown: str) -> str:
        """Convert markdown to HTML using the markdown library with styling."""
        html_body = markdown.markdown(body_markdown, extensions=['tables', 'nl2br'])
        return f"""<!DOCTYPE html>
        <html lang="en">
        <head>
            <meta charset="UTF-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
            <title>{_esc(page_title)}</title>
            <style>{STYLE}            </style>
        </head>
        <body>
            {html_body}
        </body>
        </html>
        """

    def render_welcome(self, subscriber: Subscriber, year: int) -> RenderedMessage:
        first_name = subscriber.name.split()[0] if subscriber.name and subscriber.name.split() else 'there'
        cadence = subscriber.frequency.value
        lines = [
            f"# Welcome to {_esc(self.title)}",
            f"## Hi {_esc(first_name)}!",
            f"Thank you for subscribing to our {_esc(self.title)} newsletter.",
            f"You'll be receiving {cadence} updates with the latest market trends, sentiment analysis, "
            "and financial insights.",
            "Here's what you can expect:",
            "\n".join([
                "* Market sentiment analysis and trends",
                "* Technical indicator analysis",
                "* Stock performance reports",
                "* AI-powered market predictions",
            ]),
        ]
        if subscriber.topics:
            lines.append(f"Topics you follow: {_esc(', '.join(sorted(subscriber.topics)))}")
        lines.append(f"[Visit Dashboard]({self.dashboard_url})")
        lines.append(
            f'<div class="footer">&copy; {year} {_esc(self.title)}. '
            "If you didn't sign up for this newsletter, you can unsubscribe at any time.</div>"
        )
        text = (
            f"Hi {first_name}!\n\n"
            f"Thank you for subscribing to {self.title}. You'll be receiving {cadence} updates "
            "with the latest market trends, sentiment analysis, and financial insights.\n\n"
            f"Dashboard: {self.dashboard_url}\n"
        )
        return RenderedMessage(
            subject=f"Welcome to {self.title}",
            html=self._wrap(f"Welcome to {self.title}", "\n\n".join(lines)),
            text=text,
        )

    def render_test_message(self, sent_at: datetime, transport_name: str) -> RenderedMessage:
        """Short message used to check that a mail transport works."""
        stamp = sent_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()
        body = "\n\n".join([
            f"# {_esc(self.title)} Transport Test",
            f"This is a test email sent at {stamp} through the {_esc(transport_name)} transport.",
            "If you received this, email delivery is working!",
        ])
        return RenderedMessage(
            subject=f"Test Email from {self.title} ({transport_name})",
            html=self._wrap(f"{self.title} Transport Test", body),
            text=f"This is a test email sent at {stamp} to verify {transport_name} delivery is working correctly.",
        )

    def render_digest(self, snapshot: MarketSnapshot, narrative: Optional[str], as_of: date) -> RenderedMessage:
        formatted_date = as_of.strftime('%A, %B %d, %Y').replace(' 0', ' ')
        overview = (narrative or '').strip() or fallback_narrative(snapshot)
        ind = snapshot.indicators

        md_content = [
            f"# {_esc(self.title)}",
            f"**{formatted_date}**",
            "## Market Overview",
            _esc(overview),
            f"Index level **{snapshot.index_value:,.2f}** ({_signed(snapshot.percent_change)}%), "
            f"sentiment {snapshot.sentiment:.2f} on a -1 to 1 scale.",
            "## Technical Indicators",
            "\n".join([
                "| Indicator | Value | Signal |",
                "| --- | --- | --- |",
                f"| RSI | {ind.rsi:.2f} | {ind.rsi_label} |",
                f"| MACD | {ind.macd:.3f} | {ind.macd_label} |",
                f"| Volatility | {snapshot.volatility:.2f} | {snapshot.volatility_label} |",
            ]),
        ]

        leaders = snapshot.leaders(3)
        if leaders:
            rows = ["| Stock | Symbol | Change |", "| --- | --- | --- |"]
            rows += [
                f"| {_esc(m.name)} | {_esc(m.symbol)} | {_signed(m.percent_change)}% |" for m in leaders
            ]
            md_content += ["## Top Performing Stocks", "\n".join(rows)]

        breadth = snapshot.breadth
        if breadth is not None:
            md_content += [
                "## Market Breadth",
                "\n".join([
                    f"* **Advancing Stocks:** {breadth.advancers}",
                    f"* **Declining Stocks:** {breadth.decliners}",
                    f"* **New Highs:** {breadth.new_highs}",
                    f"* **New Lows:** {breadth.new_lows}",
                ]),
            ]
            ratio = breadth.advance_decline_ratio
            if ratio is not None:
                reading = (
                    'broad market strength' if breadth.advancers > breadth.decliners
                    else 'narrow market participation'
                )
                md_content.append(f"The advance-decline ratio of {ratio:.2f} indicates {reading}.")

        if snapshot.headlines:
            news = []
            for item in snapshot.headlines:
                source = f" ({_esc(item.source)})" if item.source else ''
                news.append(f"* **{_esc(item.title)}**{source} - Impact: {item.impact}")
            md_content += ["## Market News", "\n".join(news)]

        md_content += [
            f"[View Full Dashboard]({self.dashboard_url})",
            f'<div class="footer">You\'re receiving this email because you subscribed to '
            f'{_esc(self.title)}.<br>{DISCLAIMER}</div>',
        ]

        text_lines = [
            f"{self.title} - {formatted_date}",
            "",
            overview,
            "",
            f"RSI {ind.rsi:.2f} ({ind.rsi_label}), MACD {ind.macd:.3f} ({ind.macd_label}), "
            f"volatility {snapshot.volatility:.2f} ({snapshot.volatility_label})",
        ]
        text_lines += [f"{m.name} ({m.symbol}): {_signed(m.percent_change)}%" for m in leaders]
        text_lines += ["", DISCLAIMER]

        return RenderedMessage(
            subject=f"{self.title} - {as_of.isoformat()}",
            html=self._wrap(self.title, "\n\n".join(md_content)),
            text="\n".join(text_lines),
        )
