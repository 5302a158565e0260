"""
Unit tests for DependencyAnalyzer: imports, calls, inheritance, type references and graph building.

Run: python -m pytest tests/unit/test_dependency_analyzer.py -v
"""
import sys
from pathlib import Path
from unittest import TestCase

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from modules.semantic.analysis.dependency_analyzer import (
    DependencyAnalyzer,
    bare_type_name,
    call_confidence,
    deduplicate_dependencies,
    extract_calls,
    extract_imports,
)
from modules.semantic.core.ai_item import AiItem


def make_item(item_id, item_type="function", language="python", code="", metadata=None, l1_deps=None):
    return AiItem(
        id=item_id,
        type=item_type,
        language=language,
        file_path=f"src/{item_id.split('.')[0]}",
        l0_code=code,
        l1_deps=list(l1_deps or []),
        metadata=dict(metadata or {}),
    )


class TestExtractImports(TestCase):

    def test_python(self):
        code = "from utils.helpers import format_name, parse as p\nimport os.path\n"
        self.assertEqual(extract_imports(code, 'python'), [
            {'module': 'utils.helpers', 'symbol': 'format_name'},
            {'module': 'utils.helpers', 'symbol': 'parse'},
            {'module': 'os.path', 'symbol': 'path'},
        ])

    def test_typescript(self):
        code = (
            "import React from 'react';\n"
            "import { Button, Card as C } from './ui';\n"
            "import * as path from 'path';\n"
        )
        symbols = [(i['symbol'], i['module']) for i in extract_imports(code, 'typescript')]
        self.assertEqual(symbols, [('React', 'react'), ('Button', './ui'), ('Card', './ui'), ('path', 'path')])

    def test_java(self):
        code = "import java.util.List;\nimport static org.junit.Assert.*;\n"
        imports = extract_imports(code, 'java')
        self.assertEqual(imports[0]['symbol'], 'List')
        self.assertEqual(imports[0]['module'], 'java.util.List')
        self.assertIsNone(imports[1]['symbol'])
        self.assertTrue(imports[1]['is_static'])

    def test_go_block(self):
        code = 'import (\n\t"fmt"\n\tlog "github.com/acme/log"\n)\n'
        self.assertEqual(extract_imports(code, 'go'), [
            {'module': 'fmt', 'symbol': 'fmt'},
            {'module': 'github.com/acme/log', 'symbol': 'log'},
        ])


class TestCallHelpers(TestCase):

    def test_extract_calls_skips_keywords_and_keeps_receiver(self):
        calls = extract_calls("if (ready) {\n  this.repo.save(user);\n  validate(user);\n}")
        self.assertEqual(calls, [
            {'name': 'save', 'context': 'this.repo'},
            {'name': 'validate', 'context': None},
        ])

    def test_call_confidence(self):
        target = make_item("repo.Repo.store_L3", metadata={'class_name': 'Repo'})
        self.assertEqual(call_confidence({'name': 'store', 'context': None}, target), 0.7)
        self.assertEqual(call_confidence({'name': 'store', 'context': 'Repo'}, target), 1.0)
        self.assertEqual(call_confidence({'name': 'store', 'context': 'self.cache'}, target), 0.7)

    def test_bare_type_name(self):
        self.assertEqual(bare_type_name("pkg.Base<T>"), "Base")
        self.assertEqual(bare_type_name("Generic[int]"), "Generic")

    def test_deduplicate(self):
        dep = {'type': 'call', 'from': 'a', 'to': 'b', 'symbol': 'b', 'confidence': 0.7}
        self.assertEqual(deduplicate_dependencies([dep, dict(dep, confidence=0.9)]), [dep])


class TestDependencyAnalyzer(TestCase):

    def setUp(self):
        self.analyzer = DependencyAnalyzer()

    def test_calls_and_imports_resolve_to_items(self):
        save = make_item(
            "service.UserService.save_L5",
            code="def save(self):\n    validate(self.data)\n    validate(self.data)\n    Repo.store(self)\n"
                 "from helpers import format_name\n",
            metadata={'class_name': 'UserService'},
        )
        validate = make_item("validators.validate_L1")
        store = make_item("repo.Repo.store_L3", metadata={'class_name': 'Repo'})
        format_name = make_item("helpers.format_name_L1")
        all_items = [save, validate, store, format_name]

        deps = self.analyzer.analyze_dependencies(save, all_items)

        self.assertEqual(
            [(d['type'], d['to'], d['confidence']) for d in deps],
            [
                ('import', 'helpers.format_name_L1', 0.9),
                ('call', 'validators.validate_L1', 0.7),
                ('call', 'repo.Repo.store_L3', 1.0),
            ],
        )
        self.assertTrue(all(d['from'] == save.id for d in deps))

    def test_self_references_are_excluded(self):
        recurse = make_item("math.fact_L1", code="def fact(n):\n    return n * fact(n - 1)\n")
        self.assertEqual(self.analyzer.analyze_dependencies(recurse, [recurse]), [])

    def test_inheritance_and_implementation(self):
        child = make_item(
            "shapes.Circle_L3", item_type='class', language='typescript',
            code="class Circle extends Shape implements Drawable {}",
            metadata={'superclass': 'Shape', 'implements': ['Drawable']},
        )
        shape = make_item("shapes.Shape_L1", item_type='class', language='typescript')
        drawable = make_item("draw.Drawable_L1", item_type='interface', language='typescript')

        deps = self.analyzer.analyze_dependencies(child, [child, shape, drawable])
        by_type = {d['type']: d for d in deps}

        self.assertEqual(by_type['inheritance']['to'], shape.id)
        self.assertEqual(by_type['inheritance']['confidence'], 0.95)
        self.assertEqual(by_type['implementation']['to'], drawable.id)

    def test_java_type_references(self):
        method = make_item(
            "OrderService.OrderService.place_L10", item_type='method', language='java',
            code="public User place(Repo repo) {\n    List<Order> orders = new Order();\n}",
        )
        repo = make_item("Repo.Repo_L1", item_type='class', language='java')
        order = make_item("Order.Order_L1", item_type='class', language='java')

        deps = self.analyzer.analyze_dependencies(method, [method, repo, order])
        type_refs = [(d['to'], d['confidence']) for d in deps if d['type'] == 'type_reference']

        self.assertEqual(type_refs, [(repo.id, 0.7), (order.id, 0.7)])

    def test_python_items_have_no_type_references(self):
        item = make_item("a.run_L1", code="def run(repo: Repo) -> None:\n    pass\n")
        repo = make_item("b.Repo_L1", item_type='class')
        self.assertEqual(self.analyzer.analyze_dependencies(item, [item, repo]), [])

    def test_graph_drops_edges_to_unknown_items(self):
        a = make_item("a.f_L1", l1_deps=[
            {'type': 'call', 'from': 'a.f_L1', 'to': 'b.g_L1', 'symbol': 'g', 'confidence': 0.7},
            {'type': 'call', 'from': 'a.f_L1', 'to': 'gone.h_L1', 'symbol': 'h', 'confidence': 0.7},
        ])
        b = make_item("b.g_L1")

        graph = self.analyzer.build_dependency_graph([a, b])

        self.assertEqual([node['id'] for node in graph.nodes], ['a.f_L1', 'b.g_L1'])
        self.assertEqual(graph.edges, [
            {'source': 'a.f_L1', 'target': 'b.g_L1', 'type': 'call', 'confidence': 0.7, 'symbol': 'g'},
        ])
