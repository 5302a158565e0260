"""
Dependency Analyzer

Derives L1 dependency descriptors between AiItems (imports, calls,
inheritance, type references) and builds the dependency graph once every
item's l1_deps is populated.
"""

import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional

from ..core.ai_item import AiItem, DependencyGraph

logger = logging.getLogger(__name__)

IMPORT_CONFIDENCE = 0.9
CALL_BASE_CONFIDENCE = 0.5
INHERITANCE_CONFIDENCE = 0.95
TYPE_REFERENCE_CONFIDENCE = 0.7

CALLABLE_TYPES = {'function', 'method', 'constructor'}
TYPE_TYPES = {'class', 'interface', 'type', 'struct', 'enum'}

CALL_KEYWORDS = {
    'if', 'for', 'while', 'switch', 'catch', 'return', 'function', 'func', 'def',
    'class', 'new', 'super', 'print', 'typeof', 'sizeof', 'await', 'async', 'with',
    'elif', 'not', 'and', 'or', 'in', 'lambda', 'yield', 'assert', 'del', 'make',
    'len', 'synchronized',
}

PYTHON_IMPORT = re.compile(r'^import\s+([A-Za-z_][\w.]*)')
PYTHON_FROM_IMPORT = re.compile(r'^from\s+([A-Za-z_.][\w.]*)\s+import\s+([\w.,\s*()]+)')
TS_DEFAULT_IMPORT = re.compile(r'''^import\s+([A-Za-z_$][\w$]*)\s+from\s+['"]([^'"]+)['"]''')
TS_NAMED_IMPORT = re.compile(r'''^import\s*(?:type\s*)?\{\s*([^}]+)\s*\}\s*from\s+['"]([^'"]+)['"]''')
TS_NAMESPACE_IMPORT = re.compile(r'''^import\s*\*\s*as\s+([A-Za-z_$][\w$]*)\s+from\s+['"]([^'"]+)['"]''')
JAVA_IMPORT = re.compile(r'^import\s+(static\s+)?([\w.]+?)\.(\w+|\*)\s*;')
GO_IMPORT = re.compile(r'^import\s+(?:\w+\s+)?"([^"]+)"')
GO_BLOCK_IMPORT = re.compile(r'^(?:\w+\s+)?"([^"]+)"')

CALL_PATTERN = re.compile(r'(?<![\w$.])((?:[A-Za-z_$][\w$]*\.)*)([A-Za-z_$][\w$]*)\s*\(')

TS_TYPE_PATTERNS = [
    re.compile(r':\s*([A-Z][\w$]*)'),
    re.compile(r'<([A-Z][\w$]*)>'),
    re.compile(r'extends\s+([A-Z][\w$]*)'),
    re.compile(r'implements\s+([A-Z][\w$]*)'),
]
JAVA_TYPE_PATTERNS = [
    re.compile(r'\b([A-Z][\w$]*)\s+[a-z_$][\w$]*\s*[=;,)]'),
    re.compile(r'<([A-Z][\w$]*)>'),
    re.compile(r'\bnew\s+([A-Z][\w$]*)\s*[(<]'),
]


class DependencyAnalyzer:
    """
    Analyzes dependencies between AiItems.

    Features:
    - Import detection per language (Python, TS/JS, Java, Go)
    - Call resolution by name, with receiver-aware confidence
    - Inheritance / implementation from parser metadata
    - Type references (TypeScript, Java)
    """

    def __init__(self):
        self._index_key = None
        self._by_name: Dict[str, List[AiItem]] = {}

    # ===== PUBLIC API =====

    def analyze_dependencies(self, item: AiItem, all_items: List[AiItem]) -> List[Dict[str, Any]]:
        """
        Compute the ordered, deduplicated dependency descriptors for one item.

        Args:
            item: Item to analyze
            all_items: Every item of the run (resolution targets)

        Returns:
            List of dependency dicts {type, from, to, symbol, confidence, ...}
        """
        self._ensure_index(all_items)

        dependencies: List[Dict[str, Any]] = []
        dependencies.extend(self._import_dependencies(item))
        dependencies.extend(self._call_dependencies(item))
        dependencies.extend(self._inheritance_dependencies(item))
        dependencies.extend(self._type_dependencies(item))

        return deduplicate_dependencies(d for d in dependencies if d['to'] != item.id)

    def build_dependency_graph(self, all_items: List[AiItem]) -> DependencyGraph:
        """Build nodes/edges from the items' l1_deps; edges to unknown ids are dropped."""
        known_ids = {item.id for item in all_items}
        nodes = [
            {'id': item.id, 'type': item.type, 'language': item.language, 'file_path': item.file_path}
            for item in all_items
        ]

        edges = []
        dropped = 0
        for item in all_items:
            for dep in item.l1_deps:
                if dep.get('to') not in known_ids:
                    dropped += 1
                    continue
                edges.append({
                    'source': dep['from'],
                    'target': dep['to'],
                    'type': dep['type'],
                    'confidence': dep.get('confidence'),
                    'symbol': dep.get('symbol'),
                })

        if dropped:
            logger.debug(f"Dropped {dropped} edges with unknown targets")
        logger.info(f"🕸️ Dependency graph: {len(nodes)} nodes, {len(edges)} edges")
        return DependencyGraph(nodes=nodes, edges=edges)

    # ===== INDEX =====

    def _ensure_index(self, all_items: List[AiItem]) -> None:
        key = (id(all_items), len(all_items))
        if key == self._index_key:
            return
        by_name: Dict[str, List[AiItem]] = defaultdict(list)
        for candidate in all_items:
            by_name[candidate.name].append(candidate)
        self._by_name = dict(by_name)
        self._index_key = key

    def _find_by_name(self, name: Optional[str], types=None) -> List[AiItem]:
        if not name:
            return []
        candidates = self._by_name.get(name, [])
        if types is None:
            return list(candidates)
        return [c for c in candidates if c.type in types]

    # ===== IMPORTS =====

    def _import_dependencies(self, item: AiItem) -> List[Dict[str, Any]]:
        dependencies = []
        for info in extract_imports(item.l0_code, item.language):
            for target in self._find_by_name(info.get('symbol')):
                dependencies.append({
                    'type': 'import',
                    'from': item.id,
                    'to': target.id,
                    'symbol': info.get('symbol'),
                    'module': info.get('module'),
                    'confidence': IMPORT_CONFIDENCE,
                })
        return dependencies

    # ===== CALLS =====

    def _call_dependencies(self, item: AiItem) -> List[Dict[str, Any]]:
        dependencies = []
        for call in extract_calls(item.l0_code):
            for target in self._find_by_name(call['name'], CALLABLE_TYPES):
                dependencies.append({
                    'type': 'call',
                    'from': item.id,
                    'to': target.id,
                    'symbol': call['name'],
                    'context': call['context'],
                    'confidence': call_confidence(call, target),
                })
        return dependencies

    # ===== INHERITANCE =====

    def _inheritance_dependencies(self, item: AiItem) -> List[Dict[str, Any]]:
        if item.type not in ('class', 'interface', 'struct'):
            return []

        metadata = item.metadata
        parents: List[str] = []
        if metadata.get('superclass'):
            parents.append(metadata['superclass'])
        parents.extend(metadata.get('base_classes') or [])
        if item.type == 'interface':
            parents.extend(metadata.get('extends') or metadata.get('interfaces') or [])

        interfaces: List[str] = []
        if item.type != 'interface':
            interfaces.extend(metadata.get('interfaces') or [])
            interfaces.extend(metadata.get('implements') or [])

        dependencies = []
        for parent_name in parents:
            for target in self._find_by_name(bare_type_name(parent_name), ('class', 'interface')):
                dependencies.append({
                    'type': 'inheritance',
                    'from': item.id,
                    'to': target.id,
                    'symbol': target.name,
                    'relationship': 'extends',
                    'confidence': INHERITANCE_CONFIDENCE,
                })
        for interface_name in interfaces:
            for target in self._find_by_name(bare_type_name(interface_name), ('interface',)):
                dependencies.append({
                    'type': 'implementation',
                    'from': item.id,
                    'to': target.id,
                    'symbol': target.name,
                    'relationship': 'implements',
                    'confidence': INHERITANCE_CONFIDENCE,
                })
        return dependencies

    # ===== TYPE REFERENCES =====

    def _type_dependencies(self, item: AiItem) -> List[Dict[str, Any]]:
        if item.language == 'typescript':
            patterns = TS_TYPE_PATTERNS
        elif item.language == 'java':
            patterns = JAVA_TYPE_PATTERNS
        else:
            return []

        dependencies = []
        for type_name in extract_type_references(item.l0_code, patterns):
            for target in self._find_by_name(type_name, TYPE_TYPES):
                dependencies.append({
                    'type': 'type_reference',
                    'from': item.id,
                    'to': target.id,
                    'symbol': type_name,
                    'context': 'type_annotation',
                    'confidence': TYPE_REFERENCE_CONFIDENCE,
                })
        return dependencies


# ===== EXTRACTION HELPERS =====

def extract_imports(code: str, language: str) -> List[Dict[str, Any]]:
    """Import statements in code as {module, symbol} dicts."""
    imports: List[Dict[str, Any]] = []
    in_go_block = False

    for raw_line in code.split('\n'):
        line = raw_line.strip()

        if language == 'python':
            match = PYTHON_IMPORT.match(line)
            if match:
                module = match.group(1)
                imports.append({'module': module, 'symbol': module.rsplit('.', 1)[-1]})
                continue
            match = PYTHON_FROM_IMPORT.match(line)
            if match:
                for symbol in match.group(2).replace('(', '').replace(')', '').split(','):
                    symbol = re.sub(r'\s+as\s+.*', '', symbol).strip()
                    if symbol and symbol != '*':
                        imports.append({'module': match.group(1), 'symbol': symbol})

        elif language in ('typescript', 'javascript'):
            match = TS_DEFAULT_IMPORT.match(line) or TS_NAMESPACE_IMPORT.match(line)
            if match:
                imports.append({'module': match.group(2), 'symbol': match.group(1)})
                continue
            match = TS_NAMED_IMPORT.match(line)
            if match:
                for symbol in match.group(1).split(','):
                    symbol = re.sub(r'\s+as\s+.*', '', symbol).strip()
                    if symbol:
                        imports.append({'module': match.group(2), 'symbol': symbol})

        elif language == 'java':
            match = JAVA_IMPORT.match(line)
            if match:
                symbol = None if match.group(3) == '*' else match.group(3)
                imports.append({
                    'module': f"{match.group(2)}.{match.group(3)}",
                    'symbol': symbol,
                    'is_static': bool(match.group(1)),
                })

        elif language == 'go':
            if line == 'import (':
                in_go_block = True
                continue
            if in_go_block and line == ')':
                in_go_block = False
                continue
            match = GO_IMPORT.match(line) or (GO_BLOCK_IMPORT.match(line) if in_go_block else None)
            if match:
                module = match.group(1)
                imports.append({'module': module, 'symbol': module.rsplit('/', 1)[-1]})

    return imports


def extract_calls(code: str) -> List[Dict[str, Any]]:
    """Call sites as {name, context} dicts; context is the receiver chain, if any."""
    calls = []
    for match in CALL_PATTERN.finditer(code):
        name = match.group(2)
        if name in CALL_KEYWORDS:
            continue
        receiver = match.group(1).rstrip('.') or None
        calls.append({'name': name, 'context': receiver})
    return calls


def extract_type_references(code: str, patterns) -> List[str]:
    names = []
    seen = set()
    for pattern in patterns:
        for match in pattern.finditer(code):
            name = match.group(1)
            if name not in seen:
                seen.add(name)
                names.append(name)
    return names


def call_confidence(call: Dict[str, Any], target: AiItem) -> float:
    confidence = CALL_BASE_CONFIDENCE
    class_name = target.metadata.get('class_name') or target.metadata.get('receiver_type')
    if call.get('context') and class_name and call['context'].rsplit('.', 1)[-1] == class_name:
        confidence += 0.3
    if call['name'] == target.name:
        confidence += 0.2
    return min(1.0, round(confidence, 2))


def bare_type_name(type_text: str) -> str:
    """'pkg.Base<T>' -> 'Base'."""
    without_generics = re.sub(r'[<\[].*$', '', type_text.strip())
    return without_generics.rsplit('.', 1)[-1]


def deduplicate_dependencies(dependencies) -> List[Dict[str, Any]]:
    """Keep the first descriptor per (type, from, to, symbol)."""
    seen = set()
    unique = []
    for dep in dependencies:
        key = f"{dep['type']}:{dep['from']}:{dep['to']}:{dep.get('symbol') or ''}"
        if key not in seen:
            seen.add(key)
            unique.append(dep)
    return unique
