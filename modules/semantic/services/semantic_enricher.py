"""
Semantic Enricher

Generates the L2 layer (description, summary, tags) for AiItems through an
OpenAI-compatible chat completions API. Items in a batch are enriched one at a
time; an item that keeps failing gets a fallback enrichment so the batch result
always aligns 1:1 with its input.
"""

import hashlib
import json
import logging
import os
import re
import time
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.ai_item import AiItem

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 200
COMPLEXITY_LEVELS = ('low', 'medium', 'high')

SYSTEM_INSTRUCTION = """You are an expert code analyst writing architecture documentation.
Describe what each code element does, its role in the larger system and its technical characteristics.

Guidelines:
- Be precise and technical, not verbose
- Focus on functionality and purpose, not implementation details
- Keep descriptions under 50 words
- Assign 3-5 technical tags
- Rate complexity as low, medium or high

Always respond with valid JSON."""

_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')
_UNSAFE_TEXT = re.compile(r'[^\w\s.,!?()\-]')
_WHITESPACE = re.compile(r'\s+')


def sanitize_text(text: Any) -> str:
    """Strip unusual characters, collapse whitespace, cap length."""
    if not isinstance(text, str):
        return ''
    cleaned = _WHITESPACE.sub(' ', _UNSAFE_TEXT.sub('', text)).strip()
    return cleaned[:MAX_TEXT_LENGTH]


def cache_key(item: AiItem) -> str:
    """
    Content-based cache key: language, type and a hash of code plus metadata.

    Item ids can collide across files, so they are not used here.
    """
    metadata = {k: v for k, v in item.metadata.items() if k != 'extracted_at'}
    key_str = item.l0_code + json.dumps(metadata, sort_keys=True, default=str)
    return f"{item.language}_{item.type}_{hashlib.sha256(key_str.encode()).hexdigest()}"


class SemanticEnricher:
    """
    LLM-backed enrichment service.

    Responsibilities:
    - Build a context-rich prompt per item
    - Call the chat completions API with retry and backoff
    - Parse and sanitize the JSON response
    - Cache results by item content (ids can collide)
    - Produce per-item fallback enrichments on failure
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 300,
        max_retries: int = 3,
        max_code_chars: int = 2000,
        timeout: int = 60,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize semantic enricher.

        Args:
            model: Chat model name
            api_key: API key (or set OPENAI_API_KEY env var)
            base_url: Optional OpenAI-compatible endpoint (or set OPENAI_BASE_URL)
            temperature: Sampling temperature
            max_tokens: Response token cap
            max_retries: Attempts per item before falling back
            max_code_chars: Source characters included in the prompt
            timeout: Request timeout in seconds
            client: Pre-built client (skips credential lookup)
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max(1, max_retries)
        self.max_code_chars = max_code_chars
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.stats = {'requests': 0, 'failures': 0, 'cache_hits': 0, 'fallbacks': 0}

        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY environment variable required for semantic enrichment")
            client = OpenAI(
                api_key=api_key,
                base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
                timeout=timeout,
            )
        self.client = client

        logger.info(f"🧠 Semantic enricher initialized")
        logger.info(f"   - Model: {self.model}")
        logger.info(f"   - Max retries: {self.max_retries}")

    def enrich_batch(self, items: List[AiItem]) -> List[Dict[str, Any]]:
        """
        Enrich a batch of items, preserving order and length.

        Args:
            items: Items to enrich

        Returns:
            One dict per item with description, summary, tags, complexity, confidence
        """
        results = []
        for item in items:
            try:
                results.append(self.enrich_item(item))
            except Exception as e:
                logger.warning(f"⚠️ Failed to enrich {item.id}: {type(e).__name__}: {e}")
                self.stats['fallbacks'] += 1
                results.append(self.create_fallback_enrichment(item, e))
        return results

    def enrich_item(self, item: AiItem) -> Dict[str, Any]:
        """Enrich one item with retries; raises after the last failed attempt."""
        key = cache_key(item)
        if key in self.cache:
            self.stats['cache_hits'] += 1
            return self.cache[key]

        for attempt in range(self.max_retries):
            try:
                self.stats['requests'] += 1
                result = self._call_llm(item)
                self.cache[key] = result
                return result
            except Exception as e:
                self.stats['failures'] += 1
                if attempt < self.max_retries - 1:
                    wait_time = min(2 ** attempt, 8)
                    logger.info(f"🔄 Retrying enrichment for {item.id} in {wait_time}s "
                                f"({attempt + 2}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                    continue
                raise

    def _call_llm(self, item: AiItem) -> Dict[str, Any]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": self.build_prompt(item)},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or ''
        return self.parse_response(content, item)

    def build_prompt(self, item: AiItem) -> str:
        code = item.l0_code
        if len(code) > self.max_code_chars:
            code = code[:self.max_code_chars] + "\n... (truncated)"

        return (
            f"Analyze this {item.language} code element and provide a structured description.\n\n"
            f"{self._context_info(item)}\n\n"
            f"CODE:\n```{item.language}\n{code}\n```\n\n"
            "Respond as JSON:\n"
            '{"description": "...", "purpose": "...", "tags": ["tag1", "tag2", "tag3"], "complexity": "medium"}'
        )

    def _context_info(self, item: AiItem) -> str:
        metadata = item.metadata
        lines = [f"ELEMENT: {item.id} ({item.type} in {item.language})", f"FILE: {item.file_path}"]

        if metadata.get('is_async'):
            lines.append("NOTE: This is an async function")
        if metadata.get('is_exported'):
            lines.append("NOTE: This is an exported element")
        if metadata.get('decorators'):
            lines.append(f"DECORATORS: {', '.join(metadata['decorators'])}")
        if metadata.get('modifiers'):
            lines.append(f"MODIFIERS: {' '.join(metadata['modifiers'])}")
        if metadata.get('receiver_type'):
            lines.append(f"RECEIVER: {metadata['receiver_type']}")
        if metadata.get('return_type'):
            lines.append(f"RETURN TYPE: {metadata['return_type']}")

        parameters = metadata.get('parameters') or []
        if item.type in ('function', 'method', 'constructor') and parameters:
            rendered = [
                f"{p.get('name')}: {p['type']}" if isinstance(p, dict) and p.get('type')
                else (p.get('name') if isinstance(p, dict) else str(p))
                for p in parameters
            ]
            lines.append(f"PARAMETERS: {', '.join(rendered)}")

        if item.l1_deps:
            targets = sorted({dep['to'] for dep in item.l1_deps})[:10]
            lines.append(f"DEPENDS ON: {', '.join(targets)}")

        return '\n'.join(lines)

    def parse_response(self, response_text: str, item: AiItem) -> Dict[str, Any]:
        """Parse the model's JSON reply; unstructured replies become a low-confidence enrichment."""
        match = _JSON_OBJECT.search(response_text or '')
        try:
            if not match:
                raise ValueError("No JSON found in response")
            parsed = json.loads(match.group(0))
            if not parsed.get('description'):
                raise ValueError("Missing description in response")
        except (ValueError, AttributeError) as e:
            logger.warning(f"⚠️ Unstructured LLM response for {item.id}: {e}")
            return self._unstructured_enrichment(response_text or '', item)

        tags = parsed.get('tags')
        complexity = parsed.get('complexity')
        description = sanitize_text(parsed['description'])
        return {
            'description': description,
            'summary': sanitize_text(parsed.get('purpose') or parsed.get('summary') or description),
            'tags': [sanitize_text(tag) for tag in tags if sanitize_text(tag)] if isinstance(tags, list) else [],
            'complexity': complexity if complexity in COMPLEXITY_LEVELS else 'medium',
            'confidence': self._confidence(parsed),
        }

    def _confidence(self, parsed: Dict[str, Any]) -> float:
        confidence = 0.8
        description = str(parsed.get('description', ''))
        if len(description) < 20:
            confidence -= 0.2
        if 'this code' in description.lower() or 'this function' in description.lower():
            confidence -= 0.1
        if isinstance(parsed.get('tags'), list) and len(parsed['tags']) >= 3:
            confidence += 0.1
        return round(max(0.0, min(1.0, confidence)), 2)

    def _unstructured_enrichment(self, response_text: str, item: AiItem) -> Dict[str, Any]:
        lines = [line.strip() for line in response_text.split('\n') if line.strip()]
        description = lines[0][:100] if lines else f"{item.type} in {item.language}"
        return {
            'description': sanitize_text(description),
            'summary': f"{item.type} requiring manual review",
            'tags': [item.type, item.language, 'manual-review'],
            'complexity': 'medium',
            'confidence': 0.3,
        }

    def create_fallback_enrichment(self, item: AiItem, error: BaseException) -> Dict[str, Any]:
        """Enrichment used for an item whose LLM call failed."""
        return {
            'description': sanitize_text(f"{item.type} {item.name} - Error during enrichment: {error}"),
            'summary': f"Failed to analyze {item.type}",
            'tags': [item.type, item.language, 'enrichment-error'],
            'complexity': 'unknown',
            'confidence': 0.0,
            'error': str(error),
        }
