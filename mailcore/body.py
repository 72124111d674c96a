# mailcore/body.py
#
# Decides what text to show for a message.
#
# Rules:
#   1. A body sitting directly on the top-level part is decoded and filed
#      as HTML or plain text according to its declared type.
#   2. The rest of the tree fills in whichever of the two is still missing
#      (first text/plain, first text/html). It never replaces a non-empty
#      top-level body.
#   3. HTML wins when we have it (it carries links and structure), converted
#      to markdown. Otherwise plain text. Otherwise "".

from mailcore.decoder import DecodeError, decode_email_text
from mailcore.html_text import html_to_text
from mailcore.parts import MessagePart, find_first_by_kind_pair

PLAIN_KIND = "text/plain"
HTML_KIND = "text/html"


def resolve_body(root: MessagePart | None) -> str:
    """Return the best readable text for a message's part tree."""
    if root is None:
        return ""

    plain_text, html_text = "", ""

    if root.body_data:
        try:
            decoded = decode_email_text(root.body_data)
        except DecodeError:
            decoded = ""
        if root.kind == HTML_KIND:
            html_text = decoded
        else:
            plain_text = decoded

    plain_from_parts, html_from_parts = find_first_by_kind_pair(root, PLAIN_KIND, HTML_KIND)
    plain_text = plain_text or plain_from_parts
    html_text = html_text or html_from_parts

    if html_text:
        return html_to_text(html_text)
    return plain_text


def extract_email_body(message: dict | None) -> str:
    """resolve_body() for a raw Gmail API message dict."""
    if not message or not message.get('payload'):
        return ""
    return resolve_body(MessagePart.from_gmail(message['payload']))
