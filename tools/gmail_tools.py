# tools/gmail_tools.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "Gmail plumbing." It logs into Gmail and runs every Gmail API
# call the MCP tools need:
#
#   1. OAuth login: load the saved token, refresh it, or run the browser
#      consent flow, then save the token for next time
#   2. GmailClient: search threads, list a thread's drafts, create/update a
#      draft, fetch full bodies, extract attachment text, read the profile,
#      walk through sent mail
#
# IMPORTANT: This file has NO artificial intelligence in it. Message
# parsing lives in mailcore/; this file only fetches and assembles results.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import os
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Iterator

# ── GOOGLE API IMPORTS ─────────────────────────────────────────────────

# "Request" refreshes expired tokens.
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request

# "Credentials" is the login session; "InstalledAppFlow" runs the browser
# consent screen; "build" creates the Gmail API service object.
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from rich.console import Console
from rich.markup import escape

from config import settings
from mailcore.body import extract_email_body, resolve_body
from mailcore.decoder import DecodeError, decode_email_content, encode_email_content
from mailcore.extractors import extract_text
from mailcore.parts import MessagePart, collect_attachments, find_part_by_attachment_id
from storage.app_data import token_path

console = Console(stderr=True)


class GmailAuthError(RuntimeError):
    """We could not obtain usable Gmail credentials."""


class GmailToolError(RuntimeError):
    """A Gmail operation failed; the message is safe to show the agent."""


# ── AUTHENTICATION ─────────────────────────────────────────────────────

def _client_config() -> dict:
    """The OAuth client description InstalledAppFlow expects."""
    if not settings.GMAIL_CLIENT_ID:
        raise GmailAuthError("GMAIL_CLIENT_ID environment variable not set")
    if not settings.GMAIL_CLIENT_SECRET:
        raise GmailAuthError("GMAIL_CLIENT_SECRET environment variable not set")

    return {
        "installed": {
            "client_id": settings.GMAIL_CLIENT_ID,
            "client_secret": settings.GMAIL_CLIENT_SECRET,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": [settings.REDIRECT_URL or "http://localhost"],
        }
    }


def _load_saved_credentials(path: Path) -> Credentials | None:
    """Read the cached token, or None if it's missing or unreadable."""
    if not path.exists():
        console.print("[*] No token file found, starting OAuth flow...")
        return None
    try:
        return Credentials.from_authorized_user_file(str(path), settings.GMAIL_SCOPES)
    except (ValueError, OSError) as e:
        console.print(f"[yellow]WARN[/yellow] Token file unreadable ({escape(str(e))}), starting OAuth flow...")
        return None


def _save_credentials(creds: Credentials, path: Path) -> None:
    """Write the token as JSON, readable only by the current user."""
    try:
        path.write_text(creds.to_json())
        os.chmod(path, 0o600)
    except OSError as e:
        console.print(f"[yellow]WARN[/yellow] Unable to cache OAuth token: {escape(str(e))}")


def _run_consent_flow() -> Credentials:
    """
    Open the browser on Google's consent page and wait for the redirect.

    A temporary local web server on OAUTH_CALLBACK_PORT catches the code.
    Gives up after OAUTH_TIMEOUT_SECONDS.
    """
    flow = InstalledAppFlow.from_client_config(_client_config(), settings.GMAIL_SCOPES)
    console.print("[*] Opening browser for Gmail authorization...")
    return flow.run_local_server(
        port=settings.OAUTH_CALLBACK_PORT,
        access_type="offline",
        prompt="consent",
        timeout_seconds=settings.OAUTH_TIMEOUT_SECONDS,
        success_message=(
            "Authorization successful! You can close this window and "
            "return to your terminal."
        ),
    )


def get_credentials() -> Credentials:
    """
    Return valid Gmail credentials.

    FIRST TIME: runs the consent flow and saves token.json.
    LATER: loads token.json; an expired token is refreshed silently, and a
    token that can't be refreshed (revoked, scopes changed) triggers the
    consent flow again.
    """
    path = token_path()
    creds = _load_saved_credentials(path)

    if creds and creds.valid:
        console.print("[green]OK[/green] Using existing valid token")
        return creds

    if creds and creds.expired and creds.refresh_token:
        console.print("[*] Refreshing expired Gmail token...")
        try:
            creds.refresh(Request())
        except RefreshError as e:
            console.print(f"[yellow]WARN[/yellow] Token refresh failed ({escape(str(e))}), starting OAuth flow...")
        else:
            _save_credentials(creds, path)
            return creds

    creds = _run_consent_flow()
    _save_credentials(creds, path)
    console.print("[green]OK[/green] Authorization successful! Token saved.")
    return creds


def build_gmail_service():
    """Log in and return a Gmail API v1 service object."""
    creds = get_credentials()
    try:
        return build('gmail', 'v1', credentials=creds, cache_discovery=False)
    except HttpError as e:
        raise GmailToolError(f"Unable to create Gmail service: {e}") from e


# ── HELPERS ────────────────────────────────────────────────────────────

def _thread_attachments(messages: list[dict]) -> list[dict]:
    """Attachments of every message in a thread, each tagged with its messageId."""
    attachments = []
    for message in messages:
        root = MessagePart.from_gmail(message.get('payload'))
        for attachment in collect_attachments(root):
            entry = attachment.to_dict()
            entry['messageId'] = message.get('id', '')
            attachments.append(entry)
    return attachments


def _truncate(text: str, limit: int, suffix: str) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


# ── THE CLIENT ─────────────────────────────────────────────────────────

class GmailClient:
    """
    Every Gmail operation the MCP tools use, bound to one authenticated
    service object.

    Created once at startup (see main.py) and shared through the server
    context. Methods return plain dicts/lists ready to be JSON-encoded and
    raise GmailToolError with a readable message when something fails.
    """

    def __init__(self, service, user_id: str = settings.GMAIL_USER_ID):
        self.service = service
        self.user_id = user_id

    @classmethod
    def connect(cls) -> "GmailClient":
        """Authenticate (possibly via the browser) and build a client."""
        return cls(build_gmail_service())

    # ── raw fetches ──────────────────────────────────────────────

    def _get_thread(self, thread_id: str) -> dict:
        return self.service.users().threads().get(
            userId=self.user_id, id=thread_id
        ).execute()

    def _get_message(self, message_id: str) -> dict:
        try:
            return self.service.users().messages().get(
                userId=self.user_id, id=message_id
            ).execute()
        except HttpError as e:
            raise GmailToolError(f"Failed to get message: {e}") from e

    def _drafts_or_empty(self, thread_id: str) -> list[dict]:
        try:
            return self.get_thread_drafts(thread_id)
        except GmailToolError as e:
            console.print(
                f"[yellow]WARN[/yellow] Failed to get drafts for thread {escape(thread_id)}: {escape(str(e))}"
            )
            return []

    def _thread_result(self, thread_id: str, messages: list[dict], **fields) -> dict:
        """The shared shape of search_threads / fetch_email_bodies entries."""
        first = MessagePart.from_gmail(messages[0].get('payload'))
        result = {
            'threadId': thread_id,
            'subject': first.header('Subject'),
            'from': first.header('From'),
            **fields,
            'messageCount': len(messages),
        }

        # Only include attachments / drafts if there are any
        attachments = _thread_attachments(messages)
        if attachments:
            result['attachments'] = attachments
        drafts = self._drafts_or_empty(thread_id)
        if drafts:
            result['drafts'] = drafts

        return result

    # ── profile / sent mail ──────────────────────────────────────

    def get_user_profile(self) -> dict:
        """The account's profile: emailAddress, messagesTotal, threadsTotal, ..."""
        try:
            return self.service.users().getProfile(userId=self.user_id).execute()
        except HttpError as e:
            raise GmailToolError(f"failed to get user profile: {e}") from e

    def iter_sent_messages(self, max_results: int = settings.STYLE_GUIDE_SENT_SCAN) -> Iterator[dict]:
        """
        Yield full sent messages, newest first.

        Lazy on purpose: the caller can stop once it has enough samples, and
        the remaining messages are never downloaded. Messages that fail to
        load are skipped.
        """
        try:
            listing = self.service.users().messages().list(
                userId=self.user_id, q='in:sent', maxResults=max_results
            ).execute()
        except HttpError as e:
            raise GmailToolError(f"failed to fetch sent messages: {e}") from e

        for message_ref in listing.get('messages', []):
            try:
                yield self.service.users().messages().get(
                    userId=self.user_id, id=message_ref['id']
                ).execute()
            except HttpError as e:
                console.print(f"   [yellow]WARN[/yellow] Skipping sent message {message_ref['id']}: {escape(str(e))}")

    # ── threads ──────────────────────────────────────────────────

    def search_threads(self, query: str, max_results: int = settings.DEFAULT_MAX_THREADS) -> list[dict]:
        """
        Search threads with Gmail's query syntax ("from:x is:unread", ...).

        Returns one entry per thread: subject, sender and Gmail's snippet of
        the first message, the message count, and (when present) the
        thread's attachments and existing drafts.
        """
        if max_results <= 0:
            max_results = settings.DEFAULT_MAX_THREADS

        try:
            listing = self.service.users().threads().list(
                userId=self.user_id, q=query, maxResults=max_results
            ).execute()
        except HttpError as e:
            raise GmailToolError(f"Failed to search threads: {e}") from e

        results = []
        for thread_ref in listing.get('threads', []):
            thread_id = thread_ref['id']
            try:
                thread = self._get_thread(thread_id)
            except HttpError as e:
                console.print(f"   [yellow]WARN[/yellow] Skipping thread {escape(thread_id)}: {escape(str(e))}")
                continue

            messages = thread.get('messages') or []
            if not messages:
                continue

            results.append(self._thread_result(
                thread_id, messages, snippet=messages[0].get('snippet', ''),
            ))

        return results

    def fetch_email_bodies(self, thread_ids: list[str]) -> list[dict]:
        """
        Full body of the first message of each thread (markdown when the
        email was HTML), cut at FULL_BODY_CHAR_LIMIT characters.
        """
        limit = settings.FULL_BODY_CHAR_LIMIT
        results = []

        for thread_id in thread_ids:
            try:
                thread = self._get_thread(thread_id)
            except HttpError as e:
                console.print(f"[yellow]WARN[/yellow] Failed to get thread {escape(thread_id)}: {escape(str(e))}")
                continue

            messages = thread.get('messages') or []
            if not messages:
                continue

            full_body = _truncate(
                extract_email_body(messages[0]), limit,
                f"\n\n[Content truncated - email is longer than {limit} characters]",
            )
            results.append(self._thread_result(thread_id, messages, fullBody=full_body))

        return results

    # ── drafts ───────────────────────────────────────────────────

    def get_thread_drafts(self, thread_id: str) -> list[dict]:
        """Existing drafts that belong to the given thread."""
        try:
            listing = self.service.users().drafts().list(userId=self.user_id).execute()
        except HttpError as e:
            raise GmailToolError(f"failed to list drafts: {e}") from e

        drafts = []
        for draft_ref in listing.get('drafts', []):
            # The listing already names each draft's thread; skip the
            # obvious non-matches without fetching them.
            listed_thread = (draft_ref.get('message') or {}).get('threadId')
            if listed_thread and listed_thread != thread_id:
                continue

            try:
                draft = self.service.users().drafts().get(
                    userId=self.user_id, id=draft_ref['id']
                ).execute()
            except HttpError:
                continue

            message = draft.get('message') or {}
            if message.get('threadId') != thread_id:
                continue

            info = {'draftId': draft.get('id', ''), 'threadId': thread_id}
            if message.get('payload'):
                root = MessagePart.from_gmail(message['payload'])
                subject = root.header('Subject')
                if subject:
                    info['subject'] = subject
                body = resolve_body(root)
                if body:
                    info['snippet'] = _truncate(body, settings.DRAFT_SNIPPET_CHARS, "...")

            drafts.append(info)

        return drafts

    def _reply_headers(self, thread_id: str) -> dict:
        """In-Reply-To / References for a reply to the thread's last message."""
        try:
            thread = self._get_thread(thread_id)
        except HttpError as e:
            console.print(f"[yellow]WARN[/yellow] Could not load thread {escape(thread_id)} for reply headers: {escape(str(e))}")
            return {}

        messages = thread.get('messages') or []
        if not messages:
            return {}

        last = MessagePart.from_gmail(messages[-1].get('payload'))
        message_id = last.header('Message-ID')
        if not message_id:
            return {}

        references = last.header('References')
        return {
            'In-Reply-To': message_id,
            'References': f"{references} {message_id}" if references else message_id,
        }

    def create_draft(self, to: str, subject: str, body: str, thread_id: str = "") -> dict:
        """
        Create a draft, or overwrite the thread's existing draft.

        With a thread_id the draft becomes a reply: "Re: " is added to the
        subject if missing, it's threaded via In-Reply-To/References, and if
        the thread already has a draft that draft is updated instead of a
        second one being created. One draft per thread lets an agent revise
        its reply over several calls.
        """
        reply_headers = {}
        existing_drafts = []
        if thread_id:
            if not subject.lower().startswith('re:'):
                subject = f"Re: {subject}"
            reply_headers = self._reply_headers(thread_id)
            existing_drafts = self._drafts_or_empty(thread_id)

        try:
            email = EmailMessage()
            email['To'] = to
            for name, value in reply_headers.items():
                email[name] = value
            email['Subject'] = subject
            email.set_content(body)
            raw = encode_email_content(email.as_bytes())
        except ValueError as e:
            raise GmailToolError(f"Invalid draft: {e}") from e

        draft_message = {'raw': raw}
        if thread_id:
            draft_message['threadId'] = thread_id

        drafts_api = self.service.users().drafts()

        if existing_drafts:
            draft_id = existing_drafts[0]['draftId']
            try:
                updated = drafts_api.update(
                    userId=self.user_id, id=draft_id,
                    body={'id': draft_id, 'message': draft_message},
                ).execute()
            except HttpError as e:
                raise GmailToolError(f"Failed to update existing draft: {e}") from e
            return {
                'draftId': updated.get('id', draft_id),
                'message': "Draft updated successfully (existing draft was overwritten)",
                'action': 'updated',
                'to': to,
                'subject': subject,
            }

        try:
            created = drafts_api.create(
                userId=self.user_id, body={'message': draft_message}
            ).execute()
        except HttpError as e:
            raise GmailToolError(f"Failed to create draft: {e}") from e
        return {
            'draftId': created.get('id', ''),
            'message': "Draft created successfully",
            'action': 'created',
            'to': to,
            'subject': subject,
        }

    # ── attachments ──────────────────────────────────────────────

    def _extract_part(self, message_id: str, part: MessagePart, filename: str) -> dict:
        """Download one attachment part and turn it into text."""
        try:
            attachment = self.service.users().messages().attachments().get(
                userId=self.user_id, messageId=message_id, id=part.attachment_id
            ).execute()
        except HttpError as e:
            raise GmailToolError(f"Failed to get attachment data: {e}") from e

        try:
            data = decode_email_content(attachment.get('data', ''))
        except DecodeError as e:
            raise GmailToolError(f"Failed to decode attachment data: {e}") from e

        extracted = extract_text(data, part.mime_type, part.filename)
        if not extracted.ok:
            raise GmailToolError(f"Failed to extract text: {extracted.error}")

        return {
            'messageId': message_id,
            'filename': filename,
            'attachmentId': part.attachment_id,
            'mimeType': part.mime_type,
            'textContent': extracted.text,
            'extractedAt': _now_iso(),
        }

    def extract_attachment_by_filename(self, message_id: str, filename: str) -> dict:
        """
        Extract an attachment's text, finding it by filename.

        Gmail attachment IDs change between fetches, so filenames are the
        stable handle an agent can reuse.
        """
        root = MessagePart.from_gmail(self._get_message(message_id).get('payload'))
        attachments = collect_attachments(root)

        target = next((a for a in attachments if a.filename == filename), None)
        if target is None:
            available = [a.filename for a in attachments]
            raise GmailToolError(
                f"Attachment with filename '{filename}' not found. Available files: {available}"
            )

        part = find_part_by_attachment_id(root, target.attachment_id)
        if part is None:
            raise GmailToolError(f"Could not find attachment part for filename '{filename}'")

        return self._extract_part(message_id, part, filename)

    def extract_attachment_text(self, message_id: str, attachment_id: str) -> dict:
        """Extract an attachment's text, finding it by attachment ID."""
        root = MessagePart.from_gmail(self._get_message(message_id).get('payload'))

        part = find_part_by_attachment_id(root, attachment_id)
        if part is None:
            available = [a.to_dict() for a in collect_attachments(root)]
            raise GmailToolError(
                f"Attachment not found in message. Available attachments: {available}"
            )

        return self._extract_part(message_id, part, part.filename or settings.UNNAMED_ATTACHMENT)
