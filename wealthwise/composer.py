"""Block-based composer for blog post bodies.

A post body is an ordered list of text and image blocks, stored as a JSON
document::

    {"format": "blocks", "version": 1, "blocks": [{"type": "text", "content": "..."}]}

Bodies written before the structured format (plain text, markdown image
references, editor HTML) are still readable through a best-effort parser.
"""
import json
import logging
import re
import uuid

import bleach
from markupsafe import escape

from .errors import ComposerError, StorageError, ValidationError
from .utils import strip_tags

logger = logging.getLogger(__name__)

BLOCK_TEXT = 'text'
BLOCK_IMAGE = 'image'
BLOCK_TYPES = (BLOCK_TEXT, BLOCK_IMAGE)
DOCUMENT_FORMAT = 'blocks'
DOCUMENT_VERSION = 1

ALLOWED_RICH_TEXT_TAGS = [
    'p', 'br', 'strong', 'em', 'b', 'i', 'u', 'blockquote', 'code', 'pre',
    'ul', 'ol', 'li', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'a', 'table', 'thead', 'tbody', 'tr', 'th', 'td', 'hr', 'div', 'span'
]
ALLOWED_RICH_TEXT_ATTRIBUTES = {
    '*': ['class'],
    'a': ['href', 'title', 'target', 'rel'],
}
ALLOWED_RICH_TEXT_PROTOCOLS = ['http', 'https', 'mailto']

# Legacy image references: markdown ``![alt](url)`` or an editor ``<img src="url">``.
LEGACY_IMAGE_RE = re.compile(
    r'!\[[^\]]*\]\((?P<md>[^)\s]+)\)'
    r'|<img\b[^>]*?\bsrc=["\'](?P<html>[^"\']+)["\'][^>]*>',
    re.IGNORECASE,
)
_MARKUP_RE = re.compile(r'<[a-zA-Z/][^>]*>')
_PARAGRAPH_SPLIT_RE = re.compile(r'\n\s*\n')


def _new_block_id():
    return uuid.uuid4().hex[:12]


def is_safe_image_url(url):
    value = (url or '').strip()
    if value.startswith('//'):
        return False
    return value.startswith(('https://', 'http://', '/'))


class Block:
    def __init__(self, type, content='', id=None):
        if type not in BLOCK_TYPES:
            raise ComposerError(f'Unknown block type: {type}', user_message='Blocks must be text or image.')
        self.id = id or _new_block_id()
        self.type = type
        self.content = content or ''
        self.error = None

    def to_dict(self, include_id=False):
        data = {'type': self.type, 'content': self.content}
        if include_id:
            data['id'] = self.id
            if self.error:
                data['error'] = self.error
        return data

    def __repr__(self):
        return f"<Block {self.type} {self.id}>"


class Composer:
    def __init__(self, blocks=None):
        self.blocks = list(blocks or [])
        if not self.blocks:
            self.blocks.append(Block(BLOCK_TEXT))

    def __len__(self):
        return len(self.blocks)

    def _index(self, block_id):
        for index, block in enumerate(self.blocks):
            if block.id == block_id:
                return index
        raise ComposerError(f'No block with id {block_id}', user_message='That block no longer exists.')

    def get(self, block_id):
        return self.blocks[self._index(block_id)]

    def add_block(self, type):
        block = Block(type)
        self.blocks.append(block)
        return block

    def move_up(self, block_id):
        index = self._index(block_id)
        if index > 0:
            self.blocks[index - 1], self.blocks[index] = self.blocks[index], self.blocks[index - 1]

    def move_down(self, block_id):
        index = self._index(block_id)
        if index < len(self.blocks) - 1:
            self.blocks[index + 1], self.blocks[index] = self.blocks[index], self.blocks[index + 1]

    def delete_block(self, block_id):
        index = self._index(block_id)
        if len(self.blocks) == 1:
            raise ComposerError('Refusing to delete the last block.',
                                user_message='A post needs at least one block.')
        del self.blocks[index]

    def update_block_content(self, block_id, content):
        block = self.get(block_id)
        block.content = content or ''
        block.error = None

    def attach_image(self, block_id, upload):
        """Run ``upload()`` and store the URL it returns in an image block.

        A failed upload is recorded on that block only and returned.
        """
        block = self.get(block_id)
        if block.type != BLOCK_IMAGE:
            raise ComposerError(f'Block {block_id} is not an image block.',
                                user_message='Images can only be added to image blocks.')
        try:
            url = upload()
        except StorageError as exc:
            logger.warning('Image upload for block %s failed: %s', block_id, exc)
            block.content = ''
            block.error = exc.user_message
            return exc
        block.content = url
        block.error = None
        return None

    def to_list(self, include_ids=False):
        return [block.to_dict(include_id=include_ids) for block in self.blocks]

    def serialize(self):
        return json.dumps(
            {'format': DOCUMENT_FORMAT, 'version': DOCUMENT_VERSION, 'blocks': self.to_list()},
            ensure_ascii=False,
        )

    @classmethod
    def from_list(cls, items):
        if not isinstance(items, list):
            raise ValidationError('Blocks must be a list.', fields=['blocks'])
        blocks = []
        for item in items:
            if not isinstance(item, dict):
                raise ValidationError('Each block must be an object.', fields=['blocks'])
            block_type = item.get('type')
            if block_type not in BLOCK_TYPES:
                raise ValidationError(f'Unknown block type: {block_type}', fields=['blocks'],
                                      user_message='Blocks must be text or image.')
            content = item.get('content')
            blocks.append(Block(block_type, content if isinstance(content, str) else '', id=item.get('id')))
        return cls(blocks)

    @classmethod
    def deserialize(cls, text):
        raw = (text or '').strip()
        if raw.startswith('{'):
            try:
                document = json.loads(raw)
            except json.JSONDecodeError:
                document = None
            if isinstance(document, dict) and document.get('format') == DOCUMENT_FORMAT:
                return cls.from_list(document.get('blocks') or [])
        return cls.parse_legacy(raw)

    @classmethod
    def parse_legacy(cls, text):
        """Split free-form text on image references.

        Text that happens to contain an image reference is read as an image.
        """
        blocks = []
        position = 0
        for match in LEGACY_IMAGE_RE.finditer(text or ''):
            segment = text[position:match.start()].strip()
            if segment:
                blocks.append(Block(BLOCK_TEXT, segment))
            blocks.append(Block(BLOCK_IMAGE, match.group('md') or match.group('html')))
            position = match.end()
        tail = (text or '')[position:].strip()
        if tail:
            blocks.append(Block(BLOCK_TEXT, tail))
        return cls(blocks)

    def plain_text(self):
        parts = [strip_tags(block.content) for block in self.blocks if block.type == BLOCK_TEXT]
        return '\n\n'.join(part.strip() for part in parts if part.strip())

    def render_html(self):
        html = []
        for block in self.blocks:
            if block.type == BLOCK_IMAGE:
                if block.content and is_safe_image_url(block.content):
                    html.append(f'<figure><img src="{escape(block.content)}" alt=""></figure>')
                continue
            content = block.content.strip()
            if not content:
                continue
            if _MARKUP_RE.search(content):
                html.append(bleach.clean(
                    content,
                    tags=ALLOWED_RICH_TEXT_TAGS,
                    attributes=ALLOWED_RICH_TEXT_ATTRIBUTES,
                    protocols=ALLOWED_RICH_TEXT_PROTOCOLS,
                    strip=True,
                ))
                continue
            for paragraph in _PARAGRAPH_SPLIT_RE.split(content):
                lines = [str(escape(line.strip())) for line in paragraph.strip().splitlines()]
                html.append('<p>' + '<br>'.join(lines) + '</p>')
        return '\n'.join(html)
