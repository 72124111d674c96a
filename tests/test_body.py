# tests/test_body.py
#
# Tests for choosing what text to show for a message.

import base64

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mailcore.body import extract_email_body, resolve_body
from mailcore.parts import MessagePart


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode()


def _part(mime, text=None, parts=()):
    return MessagePart(mime_type=mime, body_data=_b64(text) if text is not None else "", parts=parts)


class TestResolveBody:

    def test_top_level_plain(self):
        assert resolve_body(_part('text/plain', 'Just text')) == 'Just text'

    def test_top_level_html_converted(self):
        body = resolve_body(_part('text/html', '<p>Hi <a href="https://x.io">there</a></p>'))
        assert body == 'Hi [there](https://x.io)'

    def test_alternative_prefers_html(self):
        tree = _part('multipart/alternative', parts=(
            _part('text/plain', 'plain version'),
            _part('text/html', '<p><b>html</b> version</p>'),
        ))
        assert resolve_body(tree) == '**html** version'

    def test_html_wins_even_when_it_comes_second_in_a_deeper_branch(self):
        tree = _part('multipart/mixed', parts=(
            _part('text/plain', 'plain first'),
            _part('multipart/related', parts=(_part('text/html', '<p>deep html</p>'),)),
        ))
        assert resolve_body(tree) == 'deep html'

    def test_plain_only_multipart(self):
        tree = _part('multipart/mixed', parts=(
            _part('text/plain', 'the text'),
            MessagePart(mime_type='application/pdf', filename='a.pdf', attachment_id='A'),
        ))
        assert resolve_body(tree) == 'the text'

    def test_top_level_plain_beats_child_plain(self):
        tree = _part('text/plain', 'top', parts=(_part('text/plain', 'child'),))
        assert resolve_body(tree) == 'top'

    def test_top_level_plain_still_loses_to_child_html(self):
        tree = _part('text/plain', 'top plain', parts=(_part('text/html', '<p>child html</p>'),))
        assert resolve_body(tree) == 'child html'

    def test_undecodable_top_level_falls_back_to_children(self):
        tree = MessagePart(mime_type='text/plain', body_data='!!!', parts=(_part('text/plain', 'child'),))
        assert resolve_body(tree) == 'child'

    def test_no_text_anywhere(self):
        tree = _part('multipart/mixed', parts=(
            MessagePart(mime_type='image/png', filename='a.png', attachment_id='A'),
        ))
        assert resolve_body(tree) == ''

    def test_none(self):
        assert resolve_body(None) == ''


class TestExtractEmailBody:

    def test_gmail_message_dict(self):
        message = {'id': 'm1', 'payload': {
            'mimeType': 'text/plain', 'body': {'data': _b64('from the api')},
        }}
        assert extract_email_body(message) == 'from the api'

    def test_missing_payload(self):
        assert extract_email_body({'id': 'm1'}) == ''
        assert extract_email_body(None) == ''
