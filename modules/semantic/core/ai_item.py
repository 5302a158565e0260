"""
AiItem Record and Factory

Canonical per-construct record threaded through every pipeline stage,
plus deterministic id derivation shared by all language parsers.

Layers:
- L0: raw source span (l0_code), fixed at creation
- L1: dependency descriptors (l1_deps), added by dependency analysis
- L2: description, summary and tags, added by semantic enrichment
"""

import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

_UNSAFE_CHARS = re.compile(r'[^\w.-]')
_LINE_SUFFIX = re.compile(r'_L\d+$')


@dataclass(frozen=True)
class AiItem:
    """One parsed construct (function, class, struct, ...) and its layers."""
    id: str
    type: str
    language: str
    file_path: str
    l0_code: str
    l1_deps: List[Dict[str, Any]] = field(default_factory=list)
    l2_desc: Optional[str] = None
    l2_summary: Optional[str] = None
    l2_tags: Optional[List[str]] = None
    vector: Optional[np.ndarray] = field(default=None, compare=False, repr=False)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        """Construct name recovered from the id (last dotted part, no line suffix)."""
        return item_name_from_id(self.id)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation (vector as a list of floats)."""
        return {
            'id': self.id,
            'type': self.type,
            'language': self.language,
            'file_path': self.file_path,
            'l0_code': self.l0_code,
            'l1_deps': list(self.l1_deps),
            'l2_desc': self.l2_desc,
            'l2_summary': self.l2_summary,
            'l2_tags': list(self.l2_tags) if self.l2_tags is not None else None,
            'vector': self.vector.tolist() if self.vector is not None else None,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AiItem':
        vector = data.get('vector')
        return cls(
            id=data['id'],
            type=data['type'],
            language=data['language'],
            file_path=data['file_path'],
            l0_code=data['l0_code'],
            l1_deps=list(data.get('l1_deps') or []),
            l2_desc=data.get('l2_desc'),
            l2_summary=data.get('l2_summary'),
            l2_tags=data.get('l2_tags'),
            vector=np.asarray(vector, dtype=np.float32) if vector is not None else None,
            metadata=dict(data.get('metadata') or {}),
        )


@dataclass(frozen=True)
class IndexEntry:
    """Maps a vector's ordinal in the index back to its source construct."""
    vector_ordinal: int
    id: str
    type: str
    language: str
    file_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'vector_ordinal': self.vector_ordinal,
            'id': self.id,
            'type': self.type,
            'language': self.language,
            'file_path': self.file_path,
        }


@dataclass
class DependencyGraph:
    """Graph over item ids, built after every item's l1_deps is populated."""
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'nodes': list(self.nodes), 'edges': list(self.edges)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DependencyGraph':
        return cls(nodes=list(data.get('nodes', [])), edges=list(data.get('edges', [])))


def sanitize_identifier(name: Optional[str]) -> str:
    """Replace characters outside [A-Za-z0-9_.-] with underscores."""
    if not name:
        return 'unknown'
    return _UNSAFE_CHARS.sub('_', name)


def create_unique_id(file_path: str, name: Optional[str], start_line: int) -> str:
    """
    Derive an item id as '<file stem>.<name>_L<start_line>'.

    Two files sharing a stem can produce the same id for same-named constructs
    on the same line; callers must not treat ids as globally unique.
    """
    stem = Path(file_path).stem
    return f"{sanitize_identifier(stem)}.{sanitize_identifier(name)}_L{start_line}"


def item_name_from_id(item_id: str) -> str:
    """Recover the bare construct name from an id ('user.User.save_L12' -> 'save')."""
    without_line = _LINE_SUFFIX.sub('', item_id)
    return without_line.rsplit('.', 1)[-1]


def create_ai_item(
    item_type: str,
    name: Optional[str],
    code: str,
    file_path: str,
    project_path: str,
    language: str,
    start_line: int,
    end_line: int,
    metadata: Optional[Dict[str, Any]] = None
) -> AiItem:
    """
    Build a fresh AiItem with empty L1/L2 layers.

    Args:
        item_type: Construct kind (function, class, ...)
        name: Construct name (qualified for members, e.g. 'Server.start')
        code: Source span text
        file_path: Absolute or working-directory relative source path
        project_path: Project root that file_path is stored relative to
        language: Language tag
        start_line: 1-based first line of the span
        end_line: 1-based last line of the span
        metadata: Language-specific attributes

    Returns:
        AiItem with universal metadata fields filled in
    """
    relative_path = Path(os.path.relpath(os.path.abspath(file_path), os.path.abspath(project_path))).as_posix()

    item_metadata = dict(metadata or {})
    item_metadata.update({
        'start_line': start_line,
        'end_line': end_line,
        'source_length': len(code),
        'extracted_at': datetime.now().isoformat(),
    })

    return AiItem(
        id=create_unique_id(file_path, name, start_line),
        type=item_type,
        language=language,
        file_path=relative_path,
        l0_code=code.strip(),
        metadata=item_metadata,
    )
