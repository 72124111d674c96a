# agents/style_guide_agent.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Builds the "Personal Email Style Guide": a markdown description of how
# the user actually writes email, so an AI drafting on their behalf can
# sound like them.
#
# How it works:
#   1. Read the user's address from their Gmail profile
#   2. Walk through recent SENT mail, keeping messages with a real body
#      (one-word replies say nothing about style)
#   3. Hand those samples to the LLM with instructions on what to look for
#   4. Save the answer to the app data folder (with YAML frontmatter)
#
# ensure_style_guide_exists() is the "generate it if it's missing" wrapper
# the server calls at startup and whenever the guide is requested.
# ============================================================================

from datetime import datetime, timezone

from rich.console import Console
from rich.markup import escape

from agents import base_agent
from agents.base_agent import BaseAgent
from config.settings import (
    STYLE_GUIDE_MAX_SAMPLES, STYLE_GUIDE_MIN_BODY_CHARS, STYLE_GUIDE_SENT_SCAN,
    STYLE_GUIDE_TEMPERATURE, UNKNOWN_EMAIL_ADDRESS,
)
from mailcore.body import extract_email_body
from mailcore.parts import MessagePart
from storage.app_data import style_guide_path, write_style_guide
from tools.gmail_tools import GmailToolError

console = Console(stderr=True)


class StyleGuideError(RuntimeError):
    """The style guide could not be found or generated."""


def llm_available() -> bool:
    """True if at least one LLM provider has an API key."""
    return base_agent.USE_OPENAI or base_agent.USE_ANTHROPIC


# ── SAMPLE COLLECTION ──────────────────────────────────────────────────

def collect_samples(gmail, max_samples: int = STYLE_GUIDE_MAX_SAMPLES) -> list[dict]:
    """
    Pull substantial sent emails to learn from.

    Returns:
        Up to max_samples dicts: {'subject', 'to', 'body'}. Subject and To
        are "" when the message had none.
    """
    samples = []
    for message in gmail.iter_sent_messages(STYLE_GUIDE_SENT_SCAN):
        body = extract_email_body(message)
        if len(body) <= STYLE_GUIDE_MIN_BODY_CHARS:
            continue

        root = MessagePart.from_gmail(message.get('payload'))
        samples.append({
            'subject': root.header('Subject'),
            'to': root.header('To'),
            'body': body,
        })

        # Stop early; the prompt has to fit the model's context
        if len(samples) >= max_samples:
            break

    return samples


def format_samples(samples: list[dict]) -> str:
    """Render samples as numbered blocks separated by '---' lines."""
    blocks = []
    for i, sample in enumerate(samples, 1):
        lines = [f"Email {i}:"]
        if sample.get('subject'):
            lines.append(f"Subject: {sample['subject']}")
        if sample.get('to'):
            lines.append(f"To: {sample['to']}")
        lines.append(f"Body: {sample['body']}")
        blocks.append("\n".join(lines))
    return "\n\n---\n\n".join(blocks)


# ── THE AGENT ──────────────────────────────────────────────────────────

class StyleGuideAgent(BaseAgent):
    """Turns a pile of sent emails into a personal writing style guide."""

    def __init__(self):
        super().__init__()
        self.temperature = STYLE_GUIDE_TEMPERATURE
        self.system_prompt = (
            "You are an expert in written communication. You study a person's "
            "real emails and describe, precisely and with examples, what makes "
            "their writing recognizably theirs."
        )

    def build_prompt(self, email_address: str, samples: list[dict]) -> str:
        return f"""Analyze these {len(samples)} emails from {email_address} to create a concise, specific email style guide.

EMAILS:
{format_samples(samples)}

Create a markdown guide with:

1. **USER BACKGROUND**: Infer their role, industry, expertise from email content/recipients
2. **WRITING PATTERNS**: Specific words/phrases they actually use (not generic advice)
3. **STRUCTURE**: How they organize emails (greeting→body→closing patterns)
4. **TONE**: Their actual communication style with examples
5. **SIGNATURE ELEMENTS**: Unique characteristics that make emails sound like them

Be specific and actionable. Avoid generic advice. Focus on what makes THIS person's emails distinctive.

Start with "# Personal Email Style Guide for {email_address}\""""

    def generate(self, email_address: str, samples: list[dict]) -> str:
        """Ask the LLM for the guide. Returns the markdown text."""
        guide = self.run(self.build_prompt(email_address, samples))
        if not guide:
            raise StyleGuideError("the LLM returned an empty style guide")
        return guide


# ── PUBLIC ENTRY POINTS ────────────────────────────────────────────────

def generate_style_guide(gmail, agent: StyleGuideAgent | None = None):
    """
    Analyze the user's sent mail and (re)write the style guide file.

    Args:
        gmail: A GmailClient (or anything with get_user_profile and
               iter_sent_messages).
        agent: The LLM agent to use; a fresh StyleGuideAgent by default.

    Returns:
        Path of the written style guide.

    Raises:
        StyleGuideError: no sent mail to learn from, or the LLM call failed.
    """
    console.print("[*] Generating personal email style guide from sent emails...")
    agent = agent or StyleGuideAgent()

    try:
        email_address = gmail.get_user_profile().get('emailAddress') or UNKNOWN_EMAIL_ADDRESS
    except GmailToolError as e:
        console.print(f"[yellow]WARN[/yellow] Could not fetch user profile: {escape(str(e))}")
        email_address = UNKNOWN_EMAIL_ADDRESS

    try:
        samples = collect_samples(gmail)
    except GmailToolError as e:
        raise StyleGuideError(str(e)) from e

    if not samples:
        raise StyleGuideError("no sent emails found to analyze")

    console.print(f"[*] Analyzing {len(samples)} sent emails...")
    try:
        guide = agent.generate(email_address, samples)
    except StyleGuideError:
        raise
    except Exception as e:
        raise StyleGuideError(f"failed to generate style guide: {e}") from e

    metadata = {
        'generated_at': datetime.now(timezone.utc).isoformat(timespec='seconds'),
        'email_address': email_address,
        'sample_count': len(samples),
        'model': agent.last_model,
    }
    try:
        return write_style_guide(guide, metadata)
    except OSError as e:
        raise StyleGuideError(f"failed to write personal email style guide file: {e}") from e


def ensure_style_guide_exists(gmail) -> None:
    """
    Make sure the style guide file exists, generating it if we can.

    Raises:
        StyleGuideError: the file is missing and could not be generated.
            The message tells the user how to fix it.
    """
    path = style_guide_path()
    if path.exists():
        return

    if not llm_available():
        raise StyleGuideError(
            f"personal email style guide not found at {path} and no LLM API key is set. "
            f"Please either set OPENAI_API_KEY (or ANTHROPIC_API_KEY) for auto-generation "
            f"or create the file manually"
        )

    console.print("[*] Style guide not found, auto-generating from your sent emails...")
    try:
        generate_style_guide(gmail)
    except StyleGuideError as e:
        raise StyleGuideError(
            f"personal email style guide not found at {path} and auto-generation failed: {e}. "
            f"Please create the file manually or set OPENAI_API_KEY"
        ) from e

    console.print("[green]OK[/green] Personal email style guide auto-generated successfully!")
