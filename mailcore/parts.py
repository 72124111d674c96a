# mailcore/parts.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# A Gmail message is a TREE of "parts". A simple email is one part; a
# typical HTML email is a "multipart/alternative" part holding a text/plain
# child and a text/html child; an email with attachments wraps all of that
# in a "multipart/mixed" part with one extra child per file. Parts can nest
# to any depth.
#
# This file has:
#   - MessagePart / AttachmentDescriptor: the data shapes
#   - walk_parts() / find_first(): ONE depth-first traversal in document
#     order, which every search below is built on
#   - find_first_by_kind(), find_first_by_kind_pair(), collect_attachments(),
#     find_part_by_attachment_id(): the searches the server needs
#
# Everything here is pure: no network, no shared state, same tree in ->
# same answer out.
# ============================================================================

from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from config.settings import UNNAMED_ATTACHMENT
from mailcore.decoder import DecodeError, decode_email_text
from mailcore.extractors import is_extractable_document


# ── DATA SHAPES ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MessagePart:
    """
    One node of a message's part tree.

    A part carries inline data (body_data), a reference to fetch its bytes
    separately (attachment_id), or neither (a pure container).
    """
    mime_type: str = ""
    filename: str = ""
    body_data: str = ""
    attachment_id: str = ""
    size: int = 0
    headers: dict = field(default_factory=dict)
    parts: tuple = ()

    @classmethod
    def from_gmail(cls, payload: dict | None) -> "MessagePart":
        """
        Build a part tree from a Gmail API "payload" dict.

        Gmail's shape:
            {"mimeType": ..., "filename": ..., "headers": [{name, value}],
             "body": {"data": ..., "attachmentId": ..., "size": ...},
             "parts": [ ...same shape... ]}
        """
        payload = payload or {}
        body = payload.get('body') or {}
        headers = {
            h.get('name', ''): h.get('value', '')
            for h in payload.get('headers') or []
        }
        return cls(
            mime_type=payload.get('mimeType') or "",
            filename=payload.get('filename') or "",
            body_data=body.get('data') or "",
            attachment_id=body.get('attachmentId') or "",
            size=body.get('size') or 0,
            headers=headers,
            parts=tuple(cls.from_gmail(p) for p in payload.get('parts') or []),
        )

    @property
    def kind(self) -> str:
        """The bare, lowercase MIME type ("text/html; charset=x" -> "text/html")."""
        return self.mime_type.split(';', 1)[0].strip().lower()

    def header(self, name: str, default: str = "") -> str:
        """Look up a header by name, ignoring case ("Message-Id" == "Message-ID")."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass(frozen=True)
class AttachmentDescriptor:
    """Summary of one attachment found in a message."""
    attachment_id: str
    filename: str
    mime_type: str
    size: int
    extractable: bool

    def to_dict(self) -> dict:
        """The JSON shape our MCP tools return."""
        return {
            'attachmentId': self.attachment_id,
            'filename': self.filename,
            'mimeType': self.mime_type,
            'size': self.size,
            'extractable': self.extractable,
        }


# ── GENERIC TRAVERSAL ──────────────────────────────────────────────────

def walk_parts(root: MessagePart | None) -> Iterator[MessagePart]:
    """
    Yield every part of the tree, depth-first, in document order.

    The root comes first, then its first child and all of that child's
    descendants, then the second child, and so on. Callers that stop
    iterating early stop the traversal too.
    """
    if root is None:
        return
    yield root
    for child in root.parts:
        yield from walk_parts(child)


def find_first(
    root: MessagePart | None,
    predicate: Callable[[MessagePart], bool],
) -> Optional[MessagePart]:
    """Return the first part (in walk order) for which predicate() is true."""
    for part in walk_parts(root):
        if predicate(part):
            return part
    return None


def _decoded_body(part: MessagePart) -> str:
    """Decode a part's inline body, or "" if it has none or it won't decode."""
    if not part.body_data:
        return ""
    try:
        return decode_email_text(part.body_data)
    except DecodeError:
        return ""


# ── SEARCHES ───────────────────────────────────────────────────────────

def find_first_by_kind(root: MessagePart | None, kind: str) -> Optional[str]:
    """
    Find the first part of the given kind whose body decodes.

    Returns:
        The decoded text, or None if no such part exists.
    """
    kind = kind.lower()
    for part in walk_parts(root):
        if part.kind != kind:
            continue
        text = _decoded_body(part)
        if text:
            return text
    return None


def find_first_by_kind_pair(
    root: MessagePart | None,
    preferred_kind: str,
    fallback_kind: str,
) -> tuple[str, str]:
    """
    Find the first decodable part of each of two kinds in a single pass.

    Typical use: ("text/plain", "text/html") on a multipart/alternative
    message. Each slot keeps the FIRST match in document order and is never
    overwritten. The walk stops as soon as both slots are filled.

    Returns:
        (preferred_text, fallback_text), "" for a slot with no match.
    """
    preferred_kind = preferred_kind.lower()
    fallback_kind = fallback_kind.lower()
    preferred, fallback = "", ""

    for part in walk_parts(root):
        if preferred and fallback:
            break
        if part.kind == preferred_kind and not preferred:
            preferred = _decoded_body(part)
        elif part.kind == fallback_kind and not fallback:
            fallback = _decoded_body(part)

    return preferred, fallback


def collect_attachments(root: MessagePart | None) -> list[AttachmentDescriptor]:
    """
    List every attachment in the tree, in document order.

    A part counts as an attachment when Gmail gave it an attachmentId,
    whatever its declared type.
    """
    attachments = []
    for part in walk_parts(root):
        if not part.attachment_id:
            continue
        filename = part.filename or UNNAMED_ATTACHMENT
        attachments.append(AttachmentDescriptor(
            attachment_id=part.attachment_id,
            filename=filename,
            mime_type=part.mime_type,
            size=part.size,
            extractable=is_extractable_document(part.mime_type, filename),
        ))
    return attachments


def find_part_by_attachment_id(
    root: MessagePart | None,
    attachment_id: str,
) -> Optional[MessagePart]:
    """Return the first part whose attachmentId matches, or None."""
    return find_first(root, lambda part: part.attachment_id == attachment_id)
